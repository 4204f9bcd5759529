import asyncio

from app.bot.application import build_bot, build_dispatcher, build_relay
from app.core.config import get_settings
from app.core.logging import configure_logging


async def main() -> None:
    configure_logging(get_settings().log_level)
    bot = build_bot()
    relay = build_relay(bot)
    dp = build_dispatcher(relay)
    try:
        await dp.start_polling(bot)
    finally:
        await relay.close()
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
