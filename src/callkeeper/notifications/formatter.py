"""
Chat-ready rendering of finished calls (HTML parse mode).
"""

import html

from callkeeper.calls.models import CallOutcome, CallRecord, CallState

_OUTCOME_LABELS: dict[CallOutcome, str] = {
    CallOutcome.SUCCESS: "Successful",
    CallOutcome.FAILURE: "Failed",
    CallOutcome.VOICEMAIL: "Left voicemail",
    CallOutcome.NO_ANSWER: "No answer",
}

_OUTCOME_EMOJI: dict[CallOutcome, str] = {
    CallOutcome.SUCCESS: "✅",
    CallOutcome.VOICEMAIL: "📩",
    CallOutcome.NO_ANSWER: "📡",
}
_DEFAULT_EMOJI = "❌"


def _escape(text: str) -> str:
    return html.escape(text, quote=False)


def format_duration(seconds: int) -> str:
    """``45s``, ``2m``, ``2m 5s``."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}m {secs}s" if secs else f"{minutes}m"


def format_outcome(outcome: CallOutcome | None) -> str:
    if outcome is None:
        return "Unknown"
    return _OUTCOME_LABELS.get(outcome, "Unknown")


def render_call_summary(record: CallRecord, requester_name: str | None = None) -> str:
    """Render the completion message for a finished call."""
    emoji = _OUTCOME_EMOJI.get(record.outcome, _DEFAULT_EMOJI) if record.outcome else _DEFAULT_EMOJI
    recipient = record.to_name or record.to_number

    lines = [f"<b>{emoji} Call Complete: {_escape(recipient)}</b>", ""]
    lines.append(f"<b>Result:</b> {format_outcome(record.outcome)}")
    if record.duration_seconds:
        lines.append(f"<b>Duration:</b> {format_duration(record.duration_seconds)}")

    if record.summary:
        lines += ["", "<b>Summary:</b>", _escape(record.summary)]

    if record.state == CallState.FAILED and record.error_reason:
        lines += ["", f"<b>Error:</b> {_escape(record.error_reason)}"]

    if requester_name:
        lines += ["", f"<i>Requested by {_escape(requester_name)}</i>"]

    return "\n".join(lines)
