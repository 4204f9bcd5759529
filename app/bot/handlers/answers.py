from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message

from app.bot.texts.en import TEXTS_EN
from app.bot.transport import PLATFORM_TELEGRAM
from app.delivery.choices import ALL_ACTIONS
from app.delivery.service_facade import AnswerRelay
from app.encounter.urls import domain_host, parse_game_url

router = Router(name="answers")


@router.message(CommandStart())
async def handle_start(message: Message) -> None:
    await message.answer(TEXTS_EN["msg.start"])


@router.message(Command("connect"))
async def handle_connect(message: Message, command: CommandObject, relay: AnswerRelay) -> None:
    if message.from_user is None:
        await message.answer(TEXTS_EN["msg.system.error"])
        return

    parts = (command.args or "").split()
    if len(parts) != 3:
        await message.answer(TEXTS_EN["msg.connect.usage"])
        return

    game_url, login, password = parts
    try:
        domain, game_id = parse_game_url(game_url)
    except ValueError as exc:
        await message.answer(TEXTS_EN["msg.connect.invalid_link"].format(error=str(exc)))
        return

    await relay.configure_player(
        PLATFORM_TELEGRAM,
        str(message.from_user.id),
        domain=domain,
        game_id=game_id,
        login=login,
        password=password,
    )
    await message.answer(
        TEXTS_EN["msg.connect.done"].format(game_id=game_id, domain=domain_host(domain), login=login)
    )


@router.message(Command("queue"))
async def handle_queue_status(message: Message, relay: AnswerRelay) -> None:
    if message.from_user is None:
        await message.answer(TEXTS_EN["msg.system.error"])
        return
    await message.answer(await relay.queue_status(PLATFORM_TELEGRAM, str(message.from_user.id)))


@router.callback_query(F.data.in_(ALL_ACTIONS))
async def handle_decision(callback: CallbackQuery, relay: AnswerRelay) -> None:
    async def ack(text: str | None, show_alert: bool) -> None:
        await callback.answer(text, show_alert=show_alert)

    await relay.handle_decision(PLATFORM_TELEGRAM, str(callback.from_user.id), callback.data or "", ack)


@router.message(F.text & ~F.text.startswith("/"))
async def handle_answer_text(message: Message, relay: AnswerRelay) -> None:
    if message.from_user is None or not message.text:
        return

    answer = message.text.strip()
    if not answer:
        return

    progress = await message.answer(TEXTS_EN["msg.answer.sending"].format(answer=answer))
    await relay.handle_answer(
        PLATFORM_TELEGRAM,
        str(message.from_user.id),
        answer,
        progress.message_id,
    )
