import json

import pytest
from unittest.mock import AsyncMock

from api.services.calls import CallStatus
from api.webhook import (
    FAILURE_BODY,
    SUCCESS_BODY,
    WebhookAction,
    WebhookFailure,
    WebhookSuccess,
    parse_body,
    to_response,
)

JSON = 'application/json'

def end_of_call_report(call_id='vapi_123', reason='customer-ended-call', transcript=None, artifact=None):
    message = {'type': 'end-of-call-report', 'call': {'id': call_id}, 'endedReason': reason}
    if transcript is not None:
        message['transcript'] = transcript
    if artifact is not None:
        message['artifact'] = {'transcript': artifact}
    return json.dumps({'message': message})

def status_update(call_id='vapi_123', status='ended', reason='customer-ended-call'):
    return json.dumps({
        'message': {'type': 'status-update', 'call': {'id': call_id}, 'status': status, 'endedReason': reason}
    })

async def tracked_call(call_store, vapi_call_id='vapi_123', user_id='user_1'):
    call_id = await call_store.insert(
        phone_number='+15555550100',
        name='Grandma Rose',
        question='What was your first job?',
        user_id=user_id,
        family_member_name='Grandma Rose',
    )
    await call_store.set_vapi_call_id(call_id, vapi_call_id)
    return call_id

def test_parse_body_content_negotiation():
    assert parse_body('application/json; charset=utf-8', b'{"a": 1}') == {'a': 1}
    assert parse_body('text/plain', b'{"a": 1}') == '{"a": 1}'
    assert parse_body(None, b'raw') == 'raw'
    assert parse_body('application/octet-stream', 'raw') == 'raw'

def test_parse_body_rejects_truncated_json():
    with pytest.raises(json.JSONDecodeError):
        parse_body(JSON, b'{"message": {"type": ')

def test_to_response_shapes():
    assert to_response(WebhookSuccess(action=WebhookAction.IGNORED)) == (SUCCESS_BODY, 200)
    assert to_response(WebhookFailure(error=ValueError('boom'))) == (FAILURE_BODY, 500)

@pytest.mark.asyncio
async def test_end_of_call_report_with_artifact_transcript(processor, call_store, ingestion):
    call_id = await tracked_call(call_store)

    result = await processor.process(JSON, end_of_call_report(artifact='hello'))

    assert result.action == WebhookAction.RECONCILED
    record = call_store.records[call_id]
    assert record.status == CallStatus.COMPLETED
    assert record.transcript == 'hello'
    assert len(ingestion.scheduled) == 1

@pytest.mark.asyncio
async def test_end_of_call_report_without_transcript_stores_empty_string(processor, call_store, ingestion):
    call_id = await tracked_call(call_store)

    await processor.process(JSON, end_of_call_report())

    assert call_store.records[call_id].transcript == ''
    assert call_store.records[call_id].status == CallStatus.COMPLETED
    assert ingestion.scheduled == []

@pytest.mark.asyncio
async def test_unknown_reason_marks_call_failed(processor, call_store, ingestion):
    call_id = await tracked_call(call_store)

    await processor.process(JSON, end_of_call_report(reason='twilio-failed-to-connect-call', transcript='...'))

    assert call_store.records[call_id].status == CallStatus.FAILED
    assert ingestion.scheduled == []

@pytest.mark.asyncio
async def test_status_update_after_report_changes_nothing(processor, call_store):
    call_id = await tracked_call(call_store)
    await processor.process(JSON, end_of_call_report(transcript='We talked about the farm'))

    result = await processor.process(JSON, status_update(reason='silence-timed-out'))

    assert result.action == WebhookAction.SKIPPED
    record = call_store.records[call_id]
    assert record.status == CallStatus.COMPLETED
    assert record.transcript == 'We talked about the farm'

@pytest.mark.asyncio
async def test_status_update_after_empty_report_changes_nothing(processor, call_store):
    call_id = await tracked_call(call_store)
    await processor.process(JSON, end_of_call_report(reason='assistant-ended-call'))

    await processor.process(JSON, status_update(reason='silence-timed-out'))

    assert call_store.records[call_id].status == CallStatus.COMPLETED

@pytest.mark.asyncio
async def test_report_after_status_update_still_applies(processor, call_store):
    call_id = await tracked_call(call_store)
    await processor.process(JSON, status_update(reason='silence-timed-out'))
    assert call_store.records[call_id].status == CallStatus.FAILED

    await processor.process(JSON, end_of_call_report(reason='customer-ended-call', transcript='Hi Grandma'))

    record = call_store.records[call_id]
    assert record.status == CallStatus.COMPLETED
    assert record.transcript == 'Hi Grandma'

@pytest.mark.asyncio
async def test_status_update_losing_race_is_skipped(processor, call_store):
    call_id = await tracked_call(call_store)
    # The report lands between lookup and write
    call_store.patch_if_transcript_unset = AsyncMock(return_value=False)

    result = await processor.process(JSON, status_update())

    assert result.action == WebhookAction.SKIPPED
    call_store.patch_if_transcript_unset.assert_awaited_once_with(call_id, CallStatus.COMPLETED)
    assert call_store.writes == []

@pytest.mark.asyncio
async def test_status_update_not_ended_is_skipped(processor, call_store):
    await tracked_call(call_store)

    result = await processor.process(JSON, status_update(status='in-progress'))

    assert result.action == WebhookAction.SKIPPED
    assert call_store.writes == []

@pytest.mark.asyncio
async def test_untracked_call_is_acknowledged_without_writes(processor, call_store, ingestion):
    await tracked_call(call_store)

    result = await processor.process(JSON, end_of_call_report(call_id='vapi_unknown', transcript='hi'))

    assert result == WebhookSuccess(action=WebhookAction.UNTRACKED)
    assert call_store.writes == []
    assert ingestion.scheduled == []

@pytest.mark.asyncio
async def test_first_match_wins_for_duplicate_vapi_ids(processor, call_store):
    first = await tracked_call(call_store)
    second = await tracked_call(call_store)

    await processor.process(JSON, end_of_call_report(transcript='hello'))

    assert call_store.records[first].transcript == 'hello'
    assert call_store.records[second].transcript is None

@pytest.mark.asyncio
async def test_text_body_is_ignored(processor, call_store):
    await tracked_call(call_store)

    result = await processor.process('text/plain', end_of_call_report(transcript='hi'))

    assert result.action == WebhookAction.IGNORED
    assert call_store.writes == []

@pytest.mark.asyncio
async def test_unknown_message_type_is_ignored(processor):
    body = json.dumps({'message': {'type': 'speech-update', 'call': {'id': 'vapi_123'}}})
    result = await processor.process(JSON, body)
    assert result == WebhookSuccess(action=WebhookAction.IGNORED)

@pytest.mark.asyncio
async def test_truncated_json_is_a_failure(processor, call_store):
    await tracked_call(call_store)

    result = await processor.process(JSON, b'{"message": {"type": "end-of-call-report"')

    assert isinstance(result, WebhookFailure)
    assert isinstance(result.error, json.JSONDecodeError)
    assert call_store.writes == []

@pytest.mark.asyncio
async def test_store_failure_is_a_failure(processor, call_store):
    call_store.query_by_vapi_id = AsyncMock(side_effect=RuntimeError("supabase down"))

    result = await processor.process(JSON, end_of_call_report(transcript='hi'))

    assert isinstance(result, WebhookFailure)
    assert str(result.error) == "supabase down"

@pytest.mark.asyncio
async def test_ingestion_request_carries_call_attribution(processor, call_store, ingestion):
    call_id = await tracked_call(call_store, user_id='user_42')

    await processor.process(JSON, end_of_call_report(transcript='We talked about...'))

    request, record = ingestion.scheduled[0]
    assert request.user_id == 'user_42'
    assert request.family_member_name == 'Grandma Rose'
    assert request.call_id == call_id
    assert request.transcript == 'We talked about...'
    assert request.timestamp > 0
    assert record.id == call_id

@pytest.mark.asyncio
async def test_call_lifecycle_end_to_end(processor, call_store, ingestion):
    call_id = await call_store.insert(
        phone_number='+15555550100',
        name='Grandpa Joe',
        question='How did you meet Grandma?',
        user_id='user_1',
        family_member_name='Grandpa Joe',
    )
    record = call_store.records[call_id]
    assert record.status == CallStatus.PENDING
    assert record.vapi_call_id is None

    await call_store.set_vapi_call_id(call_id, 'vapi_777')

    await processor.process(JSON, status_update(call_id='vapi_777', reason='customer-ended-call'))
    record = call_store.records[call_id]
    assert record.status == CallStatus.COMPLETED
    assert record.transcript is None

    await processor.process(JSON, end_of_call_report(
        call_id='vapi_777', reason='customer-ended-call', transcript='We talked about...'
    ))
    record = call_store.records[call_id]
    assert record.status == CallStatus.COMPLETED
    assert record.transcript == 'We talked about...'
    assert len(ingestion.scheduled) == 1

def test_route_success_response(test_client, call_store):
    response = test_client.post(
        '/webhook/vapi',
        data=end_of_call_report(call_id='vapi_nobody', transcript='hi'),
        content_type=JSON,
    )
    assert response.status_code == 200
    assert response.get_json() == {'message': 'Webhook processed successfully'}

def test_route_failure_response(test_client, call_store):
    response = test_client.post('/webhook/vapi', data='{"message": ', content_type=JSON)
    assert response.status_code == 500
    assert response.get_json() == {'error': 'Failed to log request'}
    assert call_store.writes == []

def test_route_accepts_text_bodies(test_client):
    response = test_client.post('/webhook/vapi', data='ping', content_type='text/plain')
    assert response.status_code == 200
