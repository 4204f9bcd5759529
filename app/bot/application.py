from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties

from app.bot.handlers.answers import router as answers_router
from app.bot.transport import PLATFORM_TELEGRAM, PlatformMessenger, TelegramMessenger
from app.core.config import get_settings
from app.db.session import SessionLocal
from app.delivery.service_facade import AnswerRelay
from app.delivery.store import SqlPlayerStore

_dispatcher: Dispatcher | None = None


def build_bot() -> Bot:
    settings = get_settings()
    return Bot(token=settings.telegram_bot_token, default=DefaultBotProperties())


def build_relay(bot: Bot) -> AnswerRelay:
    messenger = PlatformMessenger()
    messenger.register(PLATFORM_TELEGRAM, TelegramMessenger(bot))
    return AnswerRelay.from_settings(
        get_settings(),
        store=SqlPlayerStore(SessionLocal),
        messenger=messenger,
    )


def build_dispatcher(relay: AnswerRelay) -> Dispatcher:
    global _dispatcher
    if _dispatcher is not None:
        return _dispatcher

    dispatcher = Dispatcher()
    dispatcher["relay"] = relay
    dispatcher.include_router(answers_router)
    _dispatcher = dispatcher
    return dispatcher
