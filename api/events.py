"""
Vapi server-message parsing.

Only two message types affect call records: ``end-of-call-report`` and
``status-update``. Everything else, including malformed bodies, parses to
``UnhandledEvent`` so new provider message types never fail a delivery.
"""
from typing import Any, Optional, Union

from pydantic import BaseModel

END_OF_CALL_REPORT = "end-of-call-report"
STATUS_UPDATE = "status-update"

class EndOfCallReport(BaseModel):
    call_id: str
    ended_reason: Optional[str] = None
    transcript: Optional[str] = None
    artifact_transcript: Optional[str] = None

class StatusUpdate(BaseModel):
    call_id: str
    status: Optional[str] = None
    ended_reason: Optional[str] = None

class UnhandledEvent(BaseModel):
    type: Optional[str] = None

ProviderEvent = Union[EndOfCallReport, StatusUpdate, UnhandledEvent]

def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None

def parse_event(body: Any) -> ProviderEvent:
    message = body.get("message") if isinstance(body, dict) else None
    if not isinstance(message, dict):
        return UnhandledEvent()

    message_type = _text(message.get("type"))
    if message_type not in (END_OF_CALL_REPORT, STATUS_UPDATE):
        return UnhandledEvent(type=message_type)

    call = message.get("call")
    call_id = _text(call.get("id")) if isinstance(call, dict) else None
    if not call_id:
        return UnhandledEvent(type=message_type)

    if message_type == END_OF_CALL_REPORT:
        artifact = message.get("artifact")
        return EndOfCallReport(
            call_id=call_id,
            ended_reason=_text(message.get("endedReason")),
            transcript=_text(message.get("transcript")),
            artifact_transcript=_text(artifact.get("transcript")) if isinstance(artifact, dict) else None,
        )

    return StatusUpdate(
        call_id=call_id,
        status=_text(message.get("status")),
        ended_reason=_text(message.get("endedReason")),
    )
