"""
Vapi webhook processing.

Turns one webhook delivery into at most one call-record write plus, for a
completed call with a transcript, a scheduled ingestion job. Failures are
returned as a WebhookFailure instead of raised; the route flattens results to
the two response shapes Vapi sees.
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

from api.events import ProviderEvent, UnhandledEvent, parse_event
from api.reconciler import reconcile
from api.services.calls import CallStatus, CallStore
from api.services.ingestion import IngestionRequest, IngestionTrigger

logger = logging.getLogger(__name__)

SUCCESS_BODY = {"message": "Webhook processed successfully"}
FAILURE_BODY = {"error": "Failed to log request"}

class WebhookAction(str, Enum):
    IGNORED = 'ignored'          # not a message type we act on
    UNTRACKED = 'untracked'      # no call record for this Vapi call id
    SKIPPED = 'skipped'          # record found, nothing to change
    RECONCILED = 'reconciled'

@dataclass
class WebhookSuccess:
    action: WebhookAction
    call_id: Optional[str] = None
    status: Optional[CallStatus] = None
    ingestion_scheduled: bool = False

@dataclass
class WebhookFailure:
    error: Exception

WebhookResult = Union[WebhookSuccess, WebhookFailure]

def parse_body(content_type: Optional[str], raw_body: Union[bytes, str]) -> Any:
    """JSON for JSON content types, raw text for everything else"""
    text = raw_body.decode('utf-8') if isinstance(raw_body, bytes) else raw_body
    if content_type and 'application/json' in content_type:
        return json.loads(text)
    return text

def to_response(result: WebhookResult) -> Tuple[dict, int]:
    if isinstance(result, WebhookSuccess):
        return SUCCESS_BODY, 200
    return FAILURE_BODY, 500

class WebhookProcessor:
    def __init__(self, call_store: CallStore, ingestion: IngestionTrigger):
        self.calls = call_store
        self.ingestion = ingestion

    async def process(self, content_type: Optional[str], raw_body: Union[bytes, str]) -> WebhookResult:
        try:
            body = parse_body(content_type, raw_body)
            event = parse_event(body)
            return await self.handle_event(event)
        except Exception as e:
            logger.error(f"Error processing Vapi webhook: {str(e)}", exc_info=True)
            return WebhookFailure(error=e)

    async def handle_event(self, event: ProviderEvent) -> WebhookSuccess:
        if isinstance(event, UnhandledEvent):
            logger.info(f"Ignoring Vapi message type: {event.type}")
            return WebhookSuccess(action=WebhookAction.IGNORED)

        records = await self.calls.query_by_vapi_id(event.call_id)
        if not records:
            logger.warning(f"No call recorded for Vapi call {event.call_id}")
            return WebhookSuccess(action=WebhookAction.UNTRACKED)
        if len(records) > 1:
            logger.warning(f"{len(records)} calls share Vapi call {event.call_id}, using the first")
        record = records[0]

        reconciliation = reconcile(record, event)
        if reconciliation is None:
            return WebhookSuccess(action=WebhookAction.SKIPPED, call_id=record.id, status=record.status)

        if reconciliation.guarded:
            applied = await self.calls.patch_if_transcript_unset(record.id, reconciliation.status)
            if not applied:
                logger.info(f"Call {record.id} already has a transcript, status update dropped")
                return WebhookSuccess(action=WebhookAction.SKIPPED, call_id=record.id, status=record.status)
        else:
            await self.calls.patch(record.id, reconciliation.status, reconciliation.transcript)
        logger.info(f"Call {record.id} reconciled to {reconciliation.status.value}")

        if reconciliation.schedule_ingestion:
            request = IngestionRequest.for_call(record, reconciliation.transcript)
            self.ingestion.schedule(request, record)

        return WebhookSuccess(
            action=WebhookAction.RECONCILED,
            call_id=record.id,
            status=reconciliation.status,
            ingestion_scheduled=reconciliation.schedule_ingestion,
        )
