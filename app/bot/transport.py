from __future__ import annotations

import structlog
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import Message

from app.bot.keyboards.delivery import build_choice_keyboard
from app.delivery.ports import ChoiceRows, Messenger

logger = structlog.get_logger(__name__)

PLATFORM_TELEGRAM = "telegram"
_NOT_MODIFIED = "message is not modified"


class TelegramMessenger:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        choices: ChoiceRows | None = None,
    ) -> int | None:
        message = await self._bot.send_message(
            chat_id=int(user_id),
            text=text,
            reply_markup=build_choice_keyboard(choices) if choices else None,
        )
        return message.message_id

    async def send_or_update_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        message_id: int | None = None,
        choices: ChoiceRows | None = None,
    ) -> int | None:
        if message_id is None:
            return await self.send_message(platform, user_id, text, choices)

        try:
            edited = await self._bot.edit_message_text(
                text=text,
                chat_id=int(user_id),
                message_id=message_id,
                reply_markup=build_choice_keyboard(choices) if choices else None,
            )
        except TelegramBadRequest as exc:
            if _NOT_MODIFIED in str(exc).lower():
                return message_id
            logger.warning("telegram_edit_failed", user_id=user_id, message_id=message_id, error=str(exc))
            return await self.send_message(platform, user_id, text, choices)
        except TelegramAPIError as exc:
            logger.warning("telegram_edit_failed", user_id=user_id, message_id=message_id, error=str(exc))
            return await self.send_message(platform, user_id, text, choices)

        if isinstance(edited, Message):
            return edited.message_id
        return message_id


class PlatformMessenger:
    """Routes delivery output to the transport registered for the player's platform."""

    def __init__(self) -> None:
        self._transports: dict[str, Messenger] = {}

    def register(self, platform: str, messenger: Messenger) -> None:
        self._transports[platform] = messenger

    def _transport(self, platform: str) -> Messenger | None:
        transport = self._transports.get(platform)
        if transport is None:
            logger.warning("messenger_platform_unknown", platform=platform)
        return transport

    async def send_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        choices: ChoiceRows | None = None,
    ) -> int | None:
        transport = self._transport(platform)
        if transport is None:
            return None
        return await transport.send_message(platform, user_id, text, choices)

    async def send_or_update_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        message_id: int | None = None,
        choices: ChoiceRows | None = None,
    ) -> int | None:
        transport = self._transport(platform)
        if transport is None:
            return None
        return await transport.send_or_update_message(platform, user_id, text, message_id, choices)
