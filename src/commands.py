"""Bot command parsing and dispatch."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from src.auth import AuthorizedUserStore
from src.config import Settings
from src.jenkins_client import TriggerStatus, trigger_build

logger = logging.getLogger(__name__)


class BotCommand(str, Enum):
    """Commands the bot responds to."""

    START = "start"
    HELP = "help"
    MY_ID = "myid"
    RESTART = "restart"
    ADD_USER = "adduser"
    DEL_USER = "deluser"
    LIST_USERS = "listusers"


@dataclass
class ParsedCommand:
    """A recognized command and its whitespace-split arguments."""

    command: BotCommand
    args: list[str] = field(default_factory=list)
    raw_text: str = ""


class Reply(Protocol):
    def __call__(self, text: str, markdown: bool = False) -> Awaitable[object]: ...


Handler = Callable[[ParsedCommand, int | None, int, Reply], Awaitable[None]]


NOT_ALLOWED = "⛔ You are not allowed to run this command."
SUPER_ADMIN_ONLY = "⛔ This command is for the Super Admin only."

# Telegram rejects messages longer than 4096 characters
MAX_BODY_CHARS = 3500

HELP_TEXT = (
    "Available commands:\n"
    "/myid - show your Telegram user ID\n"
    "/restart - trigger the Jenkins job\n"
    "/adduser <user_id> - authorize a user (Super Admin)\n"
    "/deluser <user_id> - revoke a user (Super Admin)\n"
    "/listusers - list authorized users (Super Admin)"
)


def parse_command(text: str, bot_username: str | None = None) -> ParsedCommand | None:
    """Parse message text into a ParsedCommand, or None if it is not one of ours.

    Handles the "/command@BotName" form Telegram uses in group chats; a command
    addressed to a different bot is ignored.
    """
    if not text.startswith("/"):
        return None

    parts = text.split()
    name, _, target = parts[0][1:].partition("@")
    if target and bot_username and target.lower() != bot_username.lower():
        return None

    try:
        command = BotCommand(name.lower())
    except ValueError:
        return None

    return ParsedCommand(command=command, args=parts[1:], raw_text=text)


def parse_target_id(args: list[str]) -> int | None:
    """Return the first argument as a user ID, or None if missing or non-numeric."""
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


class CommandDispatcher:
    """Routes parsed commands to their handlers, enforcing authorization first."""

    def __init__(self, store: AuthorizedUserStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings
        self._handlers: dict[BotCommand, Handler] = {
            BotCommand.START: self._handle_help,
            BotCommand.HELP: self._handle_help,
            BotCommand.MY_ID: self._handle_my_id,
            BotCommand.RESTART: self._handle_restart,
            BotCommand.ADD_USER: self._handle_add_user,
            BotCommand.DEL_USER: self._handle_del_user,
            BotCommand.LIST_USERS: self._handle_list_users,
        }

    @property
    def store(self) -> AuthorizedUserStore:
        return self._store

    def handles(self, command: BotCommand) -> bool:
        return command in self._handlers

    async def dispatch(
        self,
        parsed: ParsedCommand,
        user_id: int | None,
        chat_id: int,
        reply: Reply,
    ) -> None:
        """Run the handler for a parsed command, replying through `reply`."""
        handler = self._handlers[parsed.command]
        await handler(parsed, user_id, chat_id, reply)

    async def _handle_help(
        self, parsed: ParsedCommand, user_id: int | None, chat_id: int, reply: Reply
    ) -> None:
        await reply(HELP_TEXT)

    async def _handle_my_id(
        self, parsed: ParsedCommand, user_id: int | None, chat_id: int, reply: Reply
    ) -> None:
        await reply(f"🆔 Your user ID is:\n`{user_id}`", markdown=True)

    async def _handle_restart(
        self, parsed: ParsedCommand, user_id: int | None, chat_id: int, reply: Reply
    ) -> None:
        if not self._store.is_authorized(user_id):
            await reply(NOT_ALLOWED)
            return

        settings = self._settings
        if not settings.jenkins_configured:
            await reply(
                "❌ Bot configuration error: missing Jenkins settings "
                "(URL, USER, TOKEN or JOB)."
            )
            return

        await reply("🚀 Restart received. Sending the request to Jenkins...")

        logger.info(
            "Triggering Jenkins job %s on behalf of Telegram user %s in chat %s",
            settings.jenkins_job,
            user_id,
            chat_id,
        )

        result = await trigger_build(
            jenkins_url=settings.jenkins_url,
            job_name=settings.jenkins_job,
            username=settings.jenkins_user,
            api_token=settings.jenkins_token,
            chat_id=chat_id,
            bot_token=settings.telegram_bot_token if settings.jenkins_send_bot_token else None,
        )

        if result.status == TriggerStatus.SUCCESS:
            await reply("✅ Jenkins accepted the job. Running...")
        elif result.status == TriggerStatus.HTTP_ERROR:
            body = result.body[:MAX_BODY_CHARS]
            await reply(f"❌ Jenkins call failed: {result.status_code}\n{body}")
        else:
            await reply(f"❌ Could not connect to Jenkins:\n{result.message}")

    async def _handle_add_user(
        self, parsed: ParsedCommand, user_id: int | None, chat_id: int, reply: Reply
    ) -> None:
        if not self._store.is_super_admin(user_id):
            await reply(SUPER_ADMIN_ONLY)
            return

        target = await self._target_or_usage(parsed, reply)
        if target is None:
            return

        if not self._store.add(target):
            await reply(f"User {target} is already authorized.")
            return

        self._store.save()
        logger.info("User %s authorized by super admin %s", target, user_id)
        await reply(f"✅ Added user {target} to the authorized list.")

    async def _handle_del_user(
        self, parsed: ParsedCommand, user_id: int | None, chat_id: int, reply: Reply
    ) -> None:
        if not self._store.is_super_admin(user_id):
            await reply(SUPER_ADMIN_ONLY)
            return

        target = await self._target_or_usage(parsed, reply)
        if target is None:
            return

        if not self._store.remove(target):
            await reply(f"User {target} was not found in the list.")
            return

        self._store.save()
        logger.info("User %s revoked by super admin %s", target, user_id)
        await reply(f"✅ Removed user {target} from the list.")

    async def _handle_list_users(
        self, parsed: ParsedCommand, user_id: int | None, chat_id: int, reply: Reply
    ) -> None:
        if not self._store.is_super_admin(user_id):
            await reply(SUPER_ADMIN_ONLY)
            return

        lines = [f"👑 *Super Admin:* `{self._store.super_admin_id}`", ""]
        members = self._store.list_users()
        if not members:
            lines.append("No other users are authorized.")
        else:
            lines.append("Other authorized users:")
            lines.extend(f"- `{uid}`" for uid in members)
        await reply("\n".join(lines), markdown=True)

    async def _target_or_usage(self, parsed: ParsedCommand, reply: Reply) -> int | None:
        """Parse the target user ID, replying with usage if it is invalid."""
        usage = f"Usage: /{parsed.command.value} <user_id>"
        if not parsed.args:
            await reply(usage)
            return None

        target = parse_target_id(parsed.args)
        if target is None:
            await reply(f"Invalid ID. {usage}")
        return target
