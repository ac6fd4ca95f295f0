from typing import Optional

from pydantic import BaseModel

from api.events import EndOfCallReport, ProviderEvent, StatusUpdate
from api.services.calls import CallRecord, CallStatus

SUCCESSFUL_END_REASONS = frozenset({"customer-ended-call", "assistant-ended-call"})

class Reconciliation(BaseModel):
    """The write a provider event asks for on one call record"""
    call_id: str
    status: CallStatus
    # None means "leave the stored transcript alone"
    transcript: Optional[str] = None
    # Apply only while the stored transcript is still unset
    guarded: bool = False
    schedule_ingestion: bool = False

def status_for_reason(ended_reason: Optional[str]) -> CallStatus:
    if ended_reason in SUCCESSFUL_END_REASONS:
        return CallStatus.COMPLETED
    return CallStatus.FAILED

def reconcile(record: CallRecord, event: ProviderEvent) -> Optional[Reconciliation]:
    """Decide how an event changes a call record, or None when it changes nothing"""
    if isinstance(event, EndOfCallReport):
        status = status_for_reason(event.ended_reason)
        # Always written, even when empty, so later status updates see the report landed
        transcript = event.transcript or event.artifact_transcript or ""
        return Reconciliation(
            call_id=record.id,
            status=status,
            transcript=transcript,
            schedule_ingestion=bool(transcript) and status == CallStatus.COMPLETED,
        )

    if isinstance(event, StatusUpdate):
        if event.status != "ended" or record.transcript is not None:
            return None
        return Reconciliation(
            call_id=record.id,
            status=status_for_reason(event.ended_reason),
            guarded=True,
        )

    return None
