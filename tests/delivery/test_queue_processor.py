from __future__ import annotations

import pytest

from app.delivery.choices import queue_conflict_choices
from app.delivery.ports import InMemoryPlayerStore
from app.delivery.queue_processor import QueueProcessor, QueueRunSummary, describe_backlog, format_final_report
from app.delivery.state import AnswerConflict, BacklogItem, QueueConflict, utc_now
from app.encounter.errors import AuthRequiredError, GameProtocolError, NetworkError
from tests.delivery.helpers import FakeSender, RecordingMessenger, RecordingSleeper, configured_player, make_level
from tests.encounter.helpers import FakeClock


def _item(answer: str, *, level_id: int | None = 10, level_number: int | None = 3, failed: int = 0) -> BacklogItem:
    return BacklogItem(
        answer=answer,
        enqueued_at=utc_now(),
        level_id=level_id,
        level_number=level_number,
        failed_attempts=failed,
    )


def _processor(sender: FakeSender):
    store = InMemoryPlayerStore()
    messenger = RecordingMessenger()
    sleeper = RecordingSleeper()
    processor = QueueProcessor(store=store, messenger=messenger, sender=sender, sleep=sleeper, clock=FakeClock())
    return processor, store, messenger, sleeper


@pytest.mark.asyncio
async def test_backlog_is_sent_in_order_with_pacing() -> None:
    sender = FakeSender(level=make_level(10, 3))
    processor, _, messenger, sleeper = _processor(sender)
    player = configured_player(answer_backlog=[_item("AAA"), _item("BBB")])

    summary = await processor.process(player)

    assert summary == QueueRunSummary(total=2, delivered=2, skipped=0, remaining=0)
    assert sender.answers == ["AAA", "BBB"]
    assert sender.fetch_calls == 1
    assert sleeper.delays == [3.0, 1.2]
    assert player.answer_backlog == []
    assert player.queue_processing_active is False
    assert messenger.messages[0].text == "🔄 Preparing to process a queue of 2 answers..."
    assert messenger.last.text == "✅ Queue processed!\n📊 Result: 2 sent of 2"


@pytest.mark.asyncio
async def test_level_mismatch_becomes_a_queue_decision() -> None:
    sender = FakeSender(level=make_level(30, 3))
    processor, _, messenger, sleeper = _processor(sender)
    item = _item("AAA", level_id=10, level_number=1)
    player = configured_player(answer_backlog=[item])

    assert await processor.process(player) is None

    assert player.answer_backlog == [item]
    assert player.queue_conflict == QueueConflict(old_level_number=1, new_level_number=3, queue_size=1)
    assert sender.sent == []
    assert sleeper.delays == []
    [message] = messenger.messages
    assert message.choices == queue_conflict_choices(3)
    assert "(1 → 3)" in message.text
    assert '"AAA"' in message.text


@pytest.mark.asyncio
async def test_items_without_level_skip_the_level_check() -> None:
    sender = FakeSender()
    processor, _, _, _ = _processor(sender)
    player = configured_player(answer_backlog=[_item("AAA", level_id=None, level_number=None)])

    summary = await processor.process(player)

    assert sender.fetch_calls == 0
    assert summary is not None and summary.delivered == 1


@pytest.mark.asyncio
async def test_failed_level_check_does_not_block_the_queue() -> None:
    sender = FakeSender()
    sender.fetch_error = NetworkError("timeout", code="ETIMEDOUT")
    processor, _, _, _ = _processor(sender)
    player = configured_player(answer_backlog=[_item("AAA")])

    summary = await processor.process(player)

    assert summary is not None and summary.delivered == 1
    assert player.queue_conflict is None


@pytest.mark.asyncio
async def test_stale_state_errors_drop_the_item() -> None:
    stale = GameProtocolError("Encounter returned malformed data", code="INVALID_RESPONSE")
    sender = FakeSender(outcomes=[stale])
    processor, _, messenger, _ = _processor(sender)
    player = configured_player(answer_backlog=[_item("AAA"), _item("BBB")])

    summary = await processor.process(player)

    assert summary == QueueRunSummary(total=2, delivered=1, skipped=1, remaining=0)
    assert messenger.last.text == "✅ Queue processed!\n📊 Result: 1 sent, 1 skipped of 2"


@pytest.mark.asyncio
async def test_failures_are_counted_until_the_limit() -> None:
    failure = NetworkError("Encounter request rejected (HTTP 404)", code="HTTP_404", retryable=False)
    sender = FakeSender(outcomes=[failure, failure])
    processor, _, messenger, _ = _processor(sender)
    fresh = _item("AAA")
    worn = _item("BBB", failed=2)
    player = configured_player(answer_backlog=[fresh, worn])

    summary = await processor.process(player)

    assert summary == QueueRunSummary(total=2, delivered=0, skipped=1, remaining=1)
    assert player.answer_backlog == [fresh]
    assert fresh.failed_attempts == 1
    assert fresh.last_error == "Encounter request rejected (HTTP 404)"
    assert '"AAA" (1 attempts)' in messenger.last.text


@pytest.mark.asyncio
async def test_auth_error_clears_session_and_retries_after_cooldown() -> None:
    sender = FakeSender(outcomes=[AuthRequiredError("Encounter session expired"), None])
    processor, _, _, sleeper = _processor(sender)
    player = configured_player(answer_backlog=[_item("AAA")])

    summary = await processor.process(player)

    assert summary is not None and summary.delivered == 1
    assert sender.answers == ["AAA", "AAA"]
    assert sleeper.delays == [3.0, 2.0]
    assert player.auth_credentials is None


@pytest.mark.asyncio
async def test_auth_retries_are_limited_per_item() -> None:
    sender = FakeSender(outcomes=[AuthRequiredError(), AuthRequiredError(), AuthRequiredError()])
    processor, _, _, sleeper = _processor(sender)
    item = _item("AAA")
    player = configured_player(answer_backlog=[item])

    summary = await processor.process(player)

    assert len(sender.sent) == 3
    assert sleeper.delays == [3.0, 2.0, 2.0]
    assert summary is not None and summary.remaining == 1
    assert item.failed_attempts == 1


@pytest.mark.asyncio
async def test_failed_sign_in_is_not_retried() -> None:
    sender = FakeSender(outcomes=[AuthRequiredError("Wrong login or password", re_auth_failed=True)])
    processor, _, _, sleeper = _processor(sender)
    item = _item("AAA")
    player = configured_player(answer_backlog=[item])

    await processor.process(player)

    assert len(sender.sent) == 1
    assert sleeper.delays == [3.0]
    assert item.failed_attempts == 1


@pytest.mark.asyncio
async def test_process_does_nothing_when_guarded() -> None:
    sender = FakeSender()
    processor, _, messenger, _ = _processor(sender)

    assert await processor.process(configured_player()) is None

    busy = configured_player(answer_backlog=[_item("AAA")], queue_processing_active=True)
    assert await processor.process(busy) is None

    waiting = configured_player(
        answer_backlog=[_item("AAA")],
        single_answer_conflict=AnswerConflict(answer="x", old_level=2, new_level=3),
    )
    assert await processor.process(waiting) is None

    assert sender.sent == []
    assert messenger.messages == []

@pytest.mark.asyncio
async def test_progress_edits_are_throttled_during_replay() -> None:
    sender = FakeSender(level=make_level(10, 3))
    processor, _, messenger, _ = _processor(sender)
    player = configured_player(answer_backlog=[_item(f"A{index}") for index in range(8)])

    summary = await processor.process(player)

    assert summary is not None and summary.delivered == 8
    progress_edits = [text for text in messenger.texts if text.startswith("🔄 Processing queue:")]
    assert len(progress_edits) == 3
    assert progress_edits[0].startswith("🔄 Processing queue: 1/8")
    assert progress_edits[-1].startswith("🔄 Processing queue: 8/8")
    assert messenger.last.text == "✅ Queue processed!\n📊 Result: 8 sent of 8"


class ConflictDuringLevelRead(FakeSender):
    async def fetch_level(self, player):
        player.set_single_answer_conflict(AnswerConflict(answer="live", old_level=3, new_level=4))
        return await super().fetch_level(player)


@pytest.mark.asyncio
async def test_answer_conflict_raised_during_level_check_defers_the_queue() -> None:
    sender = ConflictDuringLevelRead(level=make_level(30, 4))
    processor, _, messenger, sleeper = _processor(sender)
    item = _item("AAA", level_id=10, level_number=3)
    player = configured_player(answer_backlog=[item])

    assert await processor.process(player) is None

    assert player.answer_backlog == [item]
    assert player.queue_conflict is None
    assert player.single_answer_conflict is not None
    assert player.queue_processing_active is False
    assert sender.sent == []
    assert sleeper.delays == []
    assert messenger.messages == []



def test_partial_report_lists_items_needing_attention() -> None:
    backlog = [_item("AAA", failed=2)]
    summary = QueueRunSummary(total=3, delivered=1, skipped=1, remaining=1)

    text = format_final_report(summary, backlog)

    assert "Sent: 1/3, removed: 1" in text
    assert "Remaining in queue: 1" in text
    assert '"AAA" (2 attempts)' in text


def test_describe_backlog() -> None:
    assert describe_backlog(configured_player()) == "📭 The offline queue is empty."

    player = configured_player(answer_backlog=[_item("AAA", failed=1)])
    assert describe_backlog(player) == "📬 Offline queue: 1 answers\n\n1. \"AAA\" (level 3, failed attempts: 1)"
