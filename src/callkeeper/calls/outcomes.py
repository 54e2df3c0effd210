"""
Outcome classification and terminal-write construction.

Both the webhook receiver and the reconciliation poller build their
terminal writes here, so a replayed webhook and a recovered poll
produce the same stored values.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any

from callkeeper.calls.models import CallOutcome, CallState
from callkeeper.telephony.events import (
    AnalysisVerdict,
    ConversationDetails,
    ConversationStatus,
    InitiationFailure,
)

VOICEMAIL_PATTERN = re.compile(r"voice[\s_-]?mail|answering[\s_-]machine", re.IGNORECASE)
NO_ANSWER_PATTERN = re.compile(r"no[\s_-]?answer|unanswered|not[\s_-]answered", re.IGNORECASE)

_VERDICT_TO_OUTCOME: dict[AnalysisVerdict, CallOutcome] = {
    AnalysisVerdict.SUCCESS: CallOutcome.SUCCESS,
    AnalysisVerdict.FAILURE: CallOutcome.FAILURE,
    AnalysisVerdict.UNKNOWN: CallOutcome.UNKNOWN,
}


def classify_outcome(
    termination_reason: str | None,
    analysis_outcome: AnalysisVerdict | str | None,
) -> CallOutcome:
    """Map termination metadata and the provider verdict to an outcome.

    The termination reason wins for voicemail and no-answer, since the
    provider's verdict tends to report unanswered calls as ``unknown``.
    """
    if termination_reason:
        if VOICEMAIL_PATTERN.search(termination_reason):
            return CallOutcome.VOICEMAIL
        if NO_ANSWER_PATTERN.search(termination_reason):
            return CallOutcome.NO_ANSWER

    if analysis_outcome is None:
        return CallOutcome.UNKNOWN
    try:
        verdict = AnalysisVerdict(analysis_outcome)
    except ValueError:
        return CallOutcome.UNKNOWN
    return _VERDICT_TO_OUTCOME[verdict]


@dataclass(frozen=True)
class TerminalUpdate:
    """Full set of terminal fields written in one overwrite."""

    state: CallState
    outcome: CallOutcome | None
    transcript: list[dict[str, Any]] | None = None
    summary: str | None = None
    duration_seconds: int | None = None
    termination_reason: str | None = None
    error_code: str | None = None
    error_reason: str | None = None

    def as_values(self) -> dict[str, Any]:
        return asdict(self)


def terminal_update_from_details(details: ConversationDetails) -> TerminalUpdate:
    """Build the terminal write for a finished conversation."""
    metadata = details.metadata
    analysis = details.analysis
    error = metadata.error

    verdict = analysis.outcome if analysis is not None else None
    state = CallState.DONE if details.status == ConversationStatus.DONE else CallState.FAILED

    return TerminalUpdate(
        state=state,
        outcome=classify_outcome(metadata.termination_reason, verdict),
        transcript=[entry.model_dump() for entry in details.transcript] or None,
        summary=analysis.summary if analysis is not None else None,
        duration_seconds=metadata.call_duration_secs,
        termination_reason=metadata.termination_reason,
        error_code=error.code if error is not None else None,
        error_reason=error.reason if error is not None else None,
    )


def terminal_update_from_initiation_failure(failure: InitiationFailure) -> TerminalUpdate:
    """Build the terminal write for a call the provider rejected after accepting it."""
    reason = failure.failure_reason or "Call initiation failed"
    return TerminalUpdate(
        state=CallState.FAILED,
        outcome=classify_outcome(reason, AnalysisVerdict.FAILURE),
        termination_reason=failure.failure_reason,
        error_reason=reason,
    )
