TEXTS_EN: dict[str, str] = {
    "msg.start": (
        "👋 I relay your answers to an Encounter game.\n\n"
        "Connect once with /connect <game-link> <login> <password>, "
        "then simply send answers as messages.\n"
        "/queue shows answers waiting for a connection."
    ),
    "msg.system.error": "Something went wrong. Please try again.",
    "msg.player.not_configured": "Connect a game first: /connect <game-link> <login> <password>",
    "msg.connect.usage": (
        "Usage: /connect <game-link> <login> <password>\n"
        "Example: /connect https://tech.en.cx/GameDetails.aspx?gid=80646 player secret"
    ),
    "msg.connect.invalid_link": "❌ {error}",
    "msg.connect.done": "✅ Connected to game {game_id} on {domain} as {login}.",
    "msg.unknown_level": "?",
    "msg.unknown_sectors": "—",
    "msg.list.more": "\n... and {count} more",
    "msg.list.more_inline": " and {count} more",
    "btn.level.send": "Send to level {level_number}",
    "btn.batch.send_force": "✅ Send to level {level_number}",
    "btn.answer.cancel": "Cancel",
    "btn.queue.clear": "Clear queue",
    "btn.batch.send_all": "✅ Send all",
    "btn.batch.cancel_all": "🚫 Cancel all",
    "btn.batch.cancel": "🚫 Cancel",
    "btn.batch.list": "📋 List",
    "msg.answer.sending": "⏳ Sending \"{answer}\"...",
    "msg.answer.sent": "📤 Answer \"{answer}\" sent to level {level_number}\n{verdict}",
    "msg.answer.level_name": "\n📝 Level: {name}",
    "msg.answer.sectors": "\n📊 Sectors: {sectors}",
    "msg.answer.error": "❌ Error: {error}",
    "msg.answer.rate_limited": "⏳ Encounter asks to slow down. Try again in {seconds} s.",
    "msg.answer.rate_limited.no_hint": "⏳ Encounter asks to slow down. Try again a bit later.",
    "msg.answer.queued": (
        "🔄 No connection. Answer \"{answer}\" was added to the queue{level_hint}.\n"
        "⚠️ If the level changes you will be asked whether to send it to the new level or clear it."
    ),
    "msg.answer.queued.level_hint": " (level {level_number})",
    "msg.answer.level_changed": (
        "⚠️ Level changed ({old_level} → {new_level})\n\n"
        "Answer \"{answer}\" was prepared for level {old_level}, but the current level is {new_level}.\n\n"
        "What should be done?"
    ),
    "msg.blocked.queue": (
        "⚠️ Decide about the old queue first!\n\n"
        "There are {queue_size} answers for level {old_level}, while the current level is {new_level}.\n\n"
        "Use the buttons below the message with the choice."
    ),
    "msg.blocked.answer": (
        "⚠️ Decide about the previous answer first!\n\n"
        "Answer \"{answer}\" was prepared for level {old_level}, but the current level is {new_level}.\n\n"
        "Use the buttons below the message with the choice."
    ),
    "msg.queue.auto_cleared": (
        "🗑️ The old queue was cleared automatically (connection lost again)\n\n"
        "{count} answers for level {old_level} were dropped."
    ),
    "msg.accumulation.added": "📦 Code \"{answer}\" added to the buffer ({count})",
    "msg.accumulation.ready": (
        "📦 {count} codes collected\n\n"
        "{codes}{more}\n\n"
        "Level when collecting started: {level}\n\n"
        "What should be done with them?"
    ),
    "msg.batch.empty": "⚠️ No collected codes",
    "msg.batch.level_changed": (
        "⚠️ Level changed ({old_level} → {new_level})\n\n"
        "{count} codes collected:\n{codes}{more}\n\n"
        "What should be done?"
    ),
    "msg.batch.progress": (
        "📤 Sending codes: {progress}/{total}\n"
        "Code: \"{answer}\"\n"
        "Status: {status}\n"
        "Level: {level_number} | Sectors: {sectors}"
    ),
    "msg.batch.status.preparing": "⏳ Preparing...",
    "msg.batch.status.sending": "⏳ Sending...",
    "msg.batch.status.error": "❌ {error}",
    "msg.batch.stopped": (
        "⚠️ Level changed while sending!\n\n"
        "📊 Sent: {sent}/{total}\n"
        "📦 Remaining: {remaining}\n\n"
        "Remaining codes: {codes}{more}\n\n"
        "What should be done with the remaining codes?"
    ),
    "msg.batch.done": "✅ Batch sent!\n\n📊 Sent: {sent}/{total}",
    "msg.batch.report.header": "\n\n📋 Detailed report:\n\n",
    "msg.batch.report.line": "{index}. \"{answer}\"\n   {status} | Level: {level}",
    "msg.batch.report.level": "\n📍 Current level: {level}",
    "msg.batch.report.sectors": "\n📊 Current sectors: {sectors}",
    "msg.batch.failed": "❌ Batch sending failed: {error}",
    "msg.batch.cancelled": "🚫 Cancelled {count} codes",
    "msg.batch.list": "📋 Full list of collected codes ({count}):\n\n{codes}",
    "msg.batch.list.line": "{index}. \"{answer}\" (level {level})",
    "msg.queue.preparing": "🔄 Preparing to process a queue of {count} answers...",
    "msg.queue.processing": "🔄 Processing a queue of {count} answers...",
    "msg.queue.progress": "🔄 Processing queue: {processed}/{total}\n{detail}",
    "msg.queue.progress.sending": "⏳ Sending \"{answer}\"...",
    "msg.queue.progress.sent": "✅ Answer sent",
    "msg.queue.progress.skipped": "⚠️ Skipped an outdated answer",
    "msg.queue.progress.reauth": "🔒 Re-authenticating for \"{answer}\"...",
    "msg.queue.progress.retry": "🔄 Retrying \"{answer}\"...",
    "msg.queue.progress.dropped": (
        "⚠️ Error for \"{answer}\": {error}\n🗑️ Answer removed after {limit} failed attempts"
    ),
    "msg.queue.progress.kept": (
        "⚠️ Error for \"{answer}\": {error}\n🔁 Attempt {attempt}/{limit}, keeping it in the queue"
    ),
    "msg.queue.done": "✅ Queue processed!\n📊 Result: {delivered} sent{skipped} of {total}",
    "msg.queue.done.skipped": ", {count} skipped",
    "msg.queue.partial": (
        "⚠️ Queue processed with errors.\n📊 Sent: {delivered}/{total}{removed}\n"
        "⏳ Remaining in queue: {remaining}{attention}"
    ),
    "msg.queue.partial.removed": ", removed: {count}",
    "msg.queue.partial.attention": "\n⚠️ Need attention: {items}",
    "msg.queue.partial.item": "\"{answer}\" ({attempts} attempts)",
    "msg.queue.level_changed": (
        "⚠️ Level changed{levels}\n\n"
        "There are {count} answers in the queue:\n{answers}{more}\n\n"
        "What should be done?"
    ),
    "msg.queue.level_changed.levels": " ({old_level} → {new_level})",
    "msg.queue.status.empty": "📭 The offline queue is empty.",
    "msg.queue.status": "📬 Offline queue: {count} answers\n\n{items}",
    "msg.queue.status.item": "{index}. \"{answer}\" (level {level}, failed attempts: {attempts})",
    "msg.decision.none": "⚠️ No pending choice",
    "msg.decision.answer.sending": "Sending the answer to level {level}...",
    "msg.decision.answer.sent": "Answer \"{answer}\" sent to level {level}\n{verdict}",
    "msg.decision.answer.failed": "❌ Sending failed: {error}",
    "msg.decision.answer.cancelled.ack": "🚫 Answer cancelled",
    "msg.decision.answer.cancelled": (
        "🚫 Answer \"{answer}\" cancelled\n\n"
        "(It was prepared for level {old_level}, the current level is {new_level})"
    ),
    "msg.decision.queue.sending": "Sending {count} answers to level {level}...",
    "msg.decision.queue.started": "Processing a queue of {count} answers...",
    "msg.decision.queue.cleared.ack": "🗑️ Queue cleared",
    "msg.decision.queue.cleared": (
        "🗑️ Queue cleared (level {old_level} → {new_level})\n\n"
        "Skipped {count} answers: {answers}{more}"
    ),
    "msg.decision.batch.sending": "Sending {count} codes...",
    "msg.decision.batch.forcing": "Sending to the current level...",
    "msg.decision.batch.busy": "⏳ Codes are already being sent",
    "msg.decision.batch.cancelled.ack": "🚫 All codes cancelled",
}
