"""Telegram update handling and webhook secret verification."""

import hmac
import logging

from telegram import Update
from telegram.constants import ParseMode

from src.commands import CommandDispatcher, parse_command

logger = logging.getLogger(__name__)


def verify_webhook_secret(received: str, expected: str) -> bool:
    """Return True if the X-Telegram-Bot-Api-Secret-Token header matches.

    With no secret configured Telegram sends no header, so every request passes.
    """
    if not expected:
        return True
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


async def handle_update(
    update: Update,
    dispatcher: CommandDispatcher,
    bot_username: str | None = None,
) -> None:
    """Process a Telegram update and dispatch it if it carries a known command."""
    message = update.effective_message
    if message is None or not message.text:
        return

    user = update.effective_user
    # Ignore bot messages to avoid loops
    if user is not None and user.is_bot:
        return

    parsed = parse_command(message.text, bot_username)
    if parsed is None:
        return

    user_id = user.id if user is not None else None
    logger.info("Command /%s from Telegram user %s", parsed.command.value, user_id)

    async def reply(text: str, markdown: bool = False) -> None:
        await message.reply_text(text, parse_mode=ParseMode.MARKDOWN if markdown else None)

    await dispatcher.dispatch(parsed, user_id, message.chat_id, reply)
