"""Tests for telegram_handler and the FastAPI webhook: secret checks, update routing, startup."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from telegram.constants import ParseMode

from src import main
from src.auth import AuthorizedUserStore
from src.commands import HELP_TEXT, CommandDispatcher
from src.config import Settings, get_settings
from src.telegram_handler import handle_update, verify_webhook_secret

SUPER_ADMIN = 1000
CHAT_ID = 555
WEBHOOK_SECRET = "test_webhook_secret"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_update(text: str | None, user_id: int | None = 42, is_bot: bool = False) -> MagicMock:
    message = MagicMock()
    message.text = text
    message.chat_id = CHAT_ID
    message.reply_text = AsyncMock()

    update = MagicMock()
    update.effective_message = message
    update.effective_user = None if user_id is None else MagicMock(id=user_id, is_bot=is_bot)
    return update


@pytest.fixture
def dispatcher(tmp_path: Path) -> CommandDispatcher:
    settings = Settings(
        _env_file=None,
        telegram_bot_token="123:telegram_test",
        super_admin_id=SUPER_ADMIN,
        authorized_users_file=tmp_path / "users.json",
    )
    return CommandDispatcher(AuthorizedUserStore(settings.authorized_users_file, SUPER_ADMIN), settings)


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:telegram_test")
    monkeypatch.setenv("SUPER_ADMIN_ID", str(SUPER_ADMIN))
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", WEBHOOK_SECRET)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# verify_webhook_secret
# ---------------------------------------------------------------------------


class TestVerifyWebhookSecret:
    def test_matching_secret(self) -> None:
        assert verify_webhook_secret(WEBHOOK_SECRET, WEBHOOK_SECRET) is True

    def test_wrong_secret(self) -> None:
        assert verify_webhook_secret("nope", WEBHOOK_SECRET) is False

    def test_missing_header(self) -> None:
        assert verify_webhook_secret("", WEBHOOK_SECRET) is False

    def test_no_secret_configured(self) -> None:
        assert verify_webhook_secret("", "") is True


# ---------------------------------------------------------------------------
# handle_update
# ---------------------------------------------------------------------------


class TestHandleUpdate:
    @pytest.mark.asyncio
    async def test_markdown_reply(self, dispatcher: CommandDispatcher) -> None:
        update = _make_update("/myid", user_id=42)

        await handle_update(update, dispatcher)

        update.effective_message.reply_text.assert_awaited_once_with(
            "🆔 Your user ID is:\n`42`", parse_mode=ParseMode.MARKDOWN
        )

    @pytest.mark.asyncio
    async def test_plain_reply(self, dispatcher: CommandDispatcher) -> None:
        update = _make_update("/help")

        await handle_update(update, dispatcher)

        update.effective_message.reply_text.assert_awaited_once_with(HELP_TEXT, parse_mode=None)

    @pytest.mark.asyncio
    async def test_user_id_and_chat_id_reach_dispatcher(self) -> None:
        fake = MagicMock()
        fake.dispatch = AsyncMock()
        update = _make_update("/restart", user_id=7)

        await handle_update(update, fake, bot_username="KickoffBot")

        parsed, user_id, chat_id, _reply = fake.dispatch.await_args.args
        assert parsed.command.value == "restart"
        assert user_id == 7
        assert chat_id == CHAT_ID

    @pytest.mark.asyncio
    async def test_missing_user_passes_none(self) -> None:
        fake = MagicMock()
        fake.dispatch = AsyncMock()

        await handle_update(_make_update("/restart", user_id=None), fake)

        assert fake.dispatch.await_args.args[1] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [None, "", "hello there", "/unknown", "/myid@OtherBot"])
    async def test_ignored_messages(self, dispatcher: CommandDispatcher, text: str | None) -> None:
        update = _make_update(text)

        await handle_update(update, dispatcher, bot_username="KickoffBot")

        update.effective_message.reply_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ignores_bots(self, dispatcher: CommandDispatcher) -> None:
        update = _make_update("/myid", is_bot=True)

        await handle_update(update, dispatcher)

        update.effective_message.reply_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_without_message(self, dispatcher: CommandDispatcher) -> None:
        update = MagicMock()
        update.effective_message = None

        await handle_update(update, dispatcher)


# ---------------------------------------------------------------------------
# Webhook endpoint
# ---------------------------------------------------------------------------


def _payload(text: str = "/myid") -> dict[str, object]:
    return {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "date": 1700000000,
            "chat": {"id": CHAT_ID, "type": "private"},
            "from": {"id": 42, "is_bot": False, "first_name": "Ann"},
            "text": text,
        },
    }


class TestWebhook:
    @pytest.fixture
    def client(self, env, dispatcher: CommandDispatcher):
        handler = AsyncMock()
        env.setattr(main, "handle_update", handler)
        main.app.state.dispatcher = dispatcher
        main.app.state.bot = None
        main.app.state.bot_username = "KickoffBot"
        return TestClient(main.app), handler

    def test_valid_update_is_dispatched(self, client, dispatcher: CommandDispatcher) -> None:
        test_client, handler = client

        response = test_client.post(
            "/telegram/webhook",
            json=_payload("/restart"),
            headers={"X-Telegram-Bot-Api-Secret-Token": WEBHOOK_SECRET},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        handler.assert_awaited_once()
        update, used_dispatcher, bot_username = handler.await_args.args
        assert update.effective_message.text == "/restart"
        assert update.effective_user.id == 42
        assert used_dispatcher is dispatcher
        assert bot_username == "KickoffBot"

    def test_bad_secret_rejected(self, client) -> None:
        test_client, handler = client

        response = test_client.post(
            "/telegram/webhook",
            json=_payload(),
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
        )

        assert response.status_code == 401
        handler.assert_not_awaited()

    def test_invalid_json_rejected(self, client) -> None:
        test_client, handler = client

        response = test_client.post(
            "/telegram/webhook",
            content=b"not json",
            headers={
                "X-Telegram-Bot-Api-Secret-Token": WEBHOOK_SECRET,
                "Content-Type": "application/json",
            },
        )

        assert response.status_code == 400
        handler.assert_not_awaited()


# ---------------------------------------------------------------------------
# Startup configuration
# ---------------------------------------------------------------------------


class TestStartup:
    def test_missing_required_config_exits(self, env) -> None:
        env.delenv("TELEGRAM_BOT_TOKEN")
        env.delenv("TELEGRAM_TOKEN", raising=False)
        env.delenv("SUPER_ADMIN_ID")
        get_settings.cache_clear()

        with pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 1

    def test_empty_token_exits(self, env) -> None:
        env.setenv("TELEGRAM_BOT_TOKEN", "")
        get_settings.cache_clear()

        with pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 1

    def test_legacy_token_variable_is_accepted(self, env) -> None:
        env.delenv("TELEGRAM_BOT_TOKEN")
        env.setenv("TELEGRAM_TOKEN", "456:legacy_token")
        get_settings.cache_clear()

        assert get_settings().telegram_bot_token == "456:legacy_token"

    def test_polling_is_the_default_mode(self, env) -> None:
        run_polling = MagicMock()
        env.setattr(main, "run_polling", run_polling)

        main.main()

        run_polling.assert_called_once_with(get_settings())

    def test_build_dispatcher_loads_store(self, env, tmp_path: Path) -> None:
        users_file = tmp_path / "users.json"
        users_file.write_text("[7, 8]")
        env.setenv("AUTHORIZED_USERS_FILE", str(users_file))
        get_settings.cache_clear()

        dispatcher = main.build_dispatcher(get_settings())

        assert dispatcher.store.list_users() == [7, 8]
        assert dispatcher.store.super_admin_id == SUPER_ADMIN

    def test_jenkins_configured_requires_all_values(self) -> None:
        settings = Settings(
            _env_file=None,
            telegram_bot_token="t",
            super_admin_id=1,
            jenkins_url="http://ci",
            jenkins_user="u",
            jenkins_token="p",
        )
        assert settings.jenkins_configured is False
        assert settings.model_copy(update={"jenkins_job": "deploy"}).jenkins_configured is True
