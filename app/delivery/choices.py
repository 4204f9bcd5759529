from __future__ import annotations

from app.bot.texts.en import TEXTS_EN
from app.delivery.ports import ChoiceRows

ACTION_ANSWER_SEND = "answer:send"
ACTION_ANSWER_CANCEL = "answer:cancel"
ACTION_QUEUE_SEND = "queue:send"
ACTION_QUEUE_CLEAR = "queue:clear"
ACTION_BATCH_SEND_ALL = "batch:send_all"
ACTION_BATCH_SEND_FORCE = "batch:send_force"
ACTION_BATCH_CANCEL_ALL = "batch:cancel_all"
ACTION_BATCH_LIST = "batch:list"

ANSWER_ACTIONS = frozenset({ACTION_ANSWER_SEND, ACTION_ANSWER_CANCEL})
QUEUE_ACTIONS = frozenset({ACTION_QUEUE_SEND, ACTION_QUEUE_CLEAR})
BATCH_ACTIONS = frozenset(
    {ACTION_BATCH_SEND_ALL, ACTION_BATCH_SEND_FORCE, ACTION_BATCH_CANCEL_ALL, ACTION_BATCH_LIST}
)
ALL_ACTIONS = ANSWER_ACTIONS | QUEUE_ACTIONS | BATCH_ACTIONS


def level_label(level_number: int | None) -> str:
    return str(level_number) if level_number is not None else TEXTS_EN["msg.unknown_level"]


def more_suffix(total: int, shown: int, *, inline: bool = False) -> str:
    if total <= shown:
        return ""
    key = "msg.list.more_inline" if inline else "msg.list.more"
    return TEXTS_EN[key].format(count=total - shown)


def answer_conflict_choices(new_level: int | None) -> ChoiceRows:
    return [
        [
            (TEXTS_EN["btn.level.send"].format(level_number=level_label(new_level)), ACTION_ANSWER_SEND),
            (TEXTS_EN["btn.answer.cancel"], ACTION_ANSWER_CANCEL),
        ]
    ]


def queue_conflict_choices(new_level: int | None) -> ChoiceRows:
    return [
        [
            (TEXTS_EN["btn.level.send"].format(level_number=level_label(new_level)), ACTION_QUEUE_SEND),
            (TEXTS_EN["btn.queue.clear"], ACTION_QUEUE_CLEAR),
        ]
    ]


def accumulation_choices() -> ChoiceRows:
    return [
        [
            (TEXTS_EN["btn.batch.send_all"], ACTION_BATCH_SEND_ALL),
            (TEXTS_EN["btn.batch.cancel_all"], ACTION_BATCH_CANCEL_ALL),
        ],
        [(TEXTS_EN["btn.batch.list"], ACTION_BATCH_LIST)],
    ]


def batch_redirect_choices(new_level: int | None) -> ChoiceRows:
    return [
        [
            (
                TEXTS_EN["btn.batch.send_force"].format(level_number=level_label(new_level)),
                ACTION_BATCH_SEND_FORCE,
            ),
            (TEXTS_EN["btn.batch.cancel"], ACTION_BATCH_CANCEL_ALL),
        ]
    ]
