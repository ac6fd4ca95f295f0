import pytest
from concurrent.futures import Future
from unittest.mock import MagicMock

from api.routes import Services, create_app
from api.services.calls import UNSET, CallRecord, CallStatus
from api.webhook import WebhookProcessor

QUERY_METHODS = ('select', 'insert', 'update', 'eq', 'is_', 'order', 'limit', 'range')

def supabase_result(data=None, error=None):
    result = MagicMock()
    result.data = data if data is not None else []
    result.error = error
    return result

def fake_supabase(*results):
    """Supabase client whose query chains return the given results in order"""
    query = MagicMock()
    for method in QUERY_METHODS:
        getattr(query, method).return_value = query
    query.execute.side_effect = [supabase_result(data) for data in results]
    client = MagicMock()
    client.table.return_value = query
    return client, query

class InMemoryCallStore:
    """CallStore stand-in keeping rows in a dict, with the same async surface"""

    def __init__(self):
        self.records = {}
        self.writes = []
        self._next_id = 1

    async def insert(self, phone_number, name, question, status=None, vapi_call_id=None,
                     user_id=None, family_member_name=None):
        call_id = f"call_{self._next_id}"
        self._next_id += 1
        self.records[call_id] = CallRecord(
            id=call_id,
            phone_number=phone_number,
            name=name,
            question=question,
            status=status or CallStatus.PENDING,
            vapi_call_id=vapi_call_id,
            user_id=user_id,
            family_member_name=family_member_name,
        )
        return call_id

    async def get(self, call_id):
        return self.records.get(call_id)

    async def query_by_vapi_id(self, vapi_call_id):
        return [r for r in self.records.values() if r.vapi_call_id == vapi_call_id]

    async def list_all(self):
        return list(self.records.values())

    async def patch(self, call_id, status, transcript=UNSET):
        update = {'status': status}
        if transcript is not UNSET:
            update['transcript'] = transcript
        self.records[call_id] = self.records[call_id].model_copy(update=update)
        self.writes.append((call_id, update))

    async def patch_if_transcript_unset(self, call_id, status):
        if self.records[call_id].transcript is not None:
            return False
        await self.patch(call_id, status)
        return True

    async def set_vapi_call_id(self, call_id, vapi_call_id):
        self.records[call_id] = self.records[call_id].model_copy(update={'vapi_call_id': vapi_call_id})

class RecordingIngestion:
    def __init__(self):
        self.scheduled = []

    def schedule(self, request, record=None):
        self.scheduled.append((request, record))
        future = Future()
        future.set_result(True)
        return future

@pytest.fixture
def call_store():
    return InMemoryCallStore()

@pytest.fixture
def ingestion():
    return RecordingIngestion()

@pytest.fixture
def processor(call_store, ingestion):
    return WebhookProcessor(call_store, ingestion)

@pytest.fixture
def services(call_store, processor):
    return Services(
        supabase=MagicMock(),
        calls=call_store,
        webhook=processor,
        initiator=MagicMock(),
        memories=MagicMock(),
        chat=MagicMock(),
    )

@pytest.fixture
def test_client(services):
    app = create_app(services)
    app.config['TESTING'] = True
    return app.test_client()
