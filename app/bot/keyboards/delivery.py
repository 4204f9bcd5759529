from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from app.delivery.ports import ChoiceRows


def build_choice_keyboard(rows: ChoiceRows) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=text, callback_data=action) for text, action in row]
            for row in rows
            if row
        ]
    )
