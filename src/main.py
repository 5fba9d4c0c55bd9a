"""Kickoff entry point: Telegram polling loop or FastAPI webhook application."""

import logging
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from telegram import Bot, Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from src.auth import AuthorizedUserStore
from src.commands import CommandDispatcher
from src.config import Settings, get_settings
from src.telegram_handler import handle_update, verify_webhook_secret

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


def build_dispatcher(settings: Settings) -> CommandDispatcher:
    """Load the authorized user store and wrap it in a dispatcher."""
    store = AuthorizedUserStore(settings.authorized_users_file, settings.super_admin_id)
    store.load()
    return CommandDispatcher(store, settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    app.state.dispatcher = build_dispatcher(settings)

    bot = Bot(settings.telegram_bot_token)
    await bot.initialize()
    app.state.bot = bot
    app.state.bot_username = bot.username

    if settings.telegram_webhook_url:
        # Limits Telegram to one in-flight delivery; the route returns before
        # its background task runs, so handlers may still overlap.
        await bot.set_webhook(
            url=settings.telegram_webhook_url,
            secret_token=settings.telegram_webhook_secret or None,
            max_connections=1,
            allowed_updates=[Update.MESSAGE],
        )
        logger.info("Registered Telegram webhook %s", settings.telegram_webhook_url)
    if not settings.telegram_webhook_secret:
        logger.warning("TELEGRAM_WEBHOOK_SECRET is not set; webhook requests are not verified.")

    try:
        yield
    finally:
        await bot.shutdown()


app = FastAPI(
    title="Kickoff",
    description="Telegram bot that triggers Jenkins builds on demand.",
    lifespan=lifespan,
)


@app.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_telegram_bot_api_secret_token: str = Header(default=""),
) -> JSONResponse:
    """Receive a Telegram update.

    Responds immediately with 200 OK; the command, including any Jenkins call
    and reply, runs in a background task.
    """
    settings = get_settings()

    if not verify_webhook_secret(x_telegram_bot_api_secret_token, settings.telegram_webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid Telegram secret token.")

    try:
        payload = await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid JSON body.")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid update.")

    update = Update.de_json(payload, request.app.state.bot)
    background_tasks.add_task(
        handle_update,
        update,
        request.app.state.dispatcher,
        request.app.state.bot_username,
    )
    return JSONResponse({"ok": True})


def run_polling(settings: Settings) -> None:
    """Long-poll Telegram until SIGINT or SIGTERM."""
    dispatcher = build_dispatcher(settings)

    async def on_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await handle_update(update, dispatcher, context.bot.username)

    application = Application.builder().token(settings.telegram_bot_token).build()
    application.add_handler(MessageHandler(filters.COMMAND, on_command))

    logger.info("Kickoff is polling Telegram...")
    application.run_polling(
        allowed_updates=[Update.MESSAGE],
        stop_signals=(signal.SIGINT, signal.SIGTERM),
    )


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.error("TELEGRAM_BOT_TOKEN and SUPER_ADMIN_ID are required: %s", exc)
        sys.exit(1)

    if settings.telegram_mode == "webhook":
        logger.info("Kickoff is serving the Telegram webhook on %s:%d", settings.host, settings.port)
        uvicorn.run(app, host=settings.host, port=settings.port)
    else:
        run_polling(settings)


if __name__ == "__main__":
    main()
