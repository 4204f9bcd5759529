from app.bot.keyboards.delivery import build_choice_keyboard

__all__ = [
    "build_choice_keyboard",
]
