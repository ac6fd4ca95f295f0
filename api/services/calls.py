import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lib.database import rows
from lib.error_handler import ValidationFailed

logger = logging.getLogger(__name__)

class CallStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'

class CallRecord(BaseModel):
    """One outbound call attempt, as stored in the calls table"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    phone_number: str = Field(alias='phoneNumber')
    name: str
    question: str
    status: CallStatus = CallStatus.PENDING
    vapi_call_id: Optional[str] = Field(default=None, alias='vapiCallId')
    transcript: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias='userId')
    family_member_name: Optional[str] = Field(default=None, alias='familyMemberName')

    @field_validator('id', mode='before')
    @classmethod
    def _id_as_str(cls, value: Any) -> str:
        return str(value)

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode='json')

# Sentinel for "leave the column alone" in patch()
UNSET: Any = object()

class CallStore:
    def __init__(self, supabase_client, table: str = 'calls'):
        self.supabase = supabase_client
        self.table = table

    async def insert(
        self,
        phone_number: str,
        name: str,
        question: str,
        status: Optional[CallStatus] = None,
        vapi_call_id: Optional[str] = None,
        user_id: Optional[str] = None,
        family_member_name: Optional[str] = None,
    ) -> str:
        """Record a new call and return its id. Status defaults to pending."""
        data = {
            'phoneNumber': phone_number,
            'name': name,
            'question': question,
            'status': (status or CallStatus.PENDING).value,
            'vapiCallId': vapi_call_id,
            'userId': user_id,
            'familyMemberName': family_member_name,
        }
        logger.info(f"Recording call to {name} ({phone_number})")
        result = self.supabase.table(self.table).insert(data).execute()
        inserted = rows(result, 'recording call')
        if not inserted:
            raise ValueError("Insert into calls returned no row")
        return str(inserted[0]['id'])

    async def get(self, call_id: str) -> Optional[CallRecord]:
        result = self.supabase.table(self.table).select('*').eq('id', call_id).execute()
        found = rows(result, 'fetching call')
        return CallRecord.model_validate(found[0]) if found else None

    async def query_by_vapi_id(self, vapi_call_id: str) -> List[CallRecord]:
        """All calls carrying the given Vapi call id, in store order. Usually zero or one."""
        if not vapi_call_id:
            raise ValueError("vapi_call_id must be a non-empty string")
        result = self.supabase.table(self.table).select('*').eq('vapiCallId', vapi_call_id).execute()
        return [CallRecord.model_validate(row) for row in rows(result, 'looking up call')]

    async def list_all(self) -> List[CallRecord]:
        result = self.supabase.table(self.table).select('*').execute()
        return [CallRecord.model_validate(row) for row in rows(result, 'listing calls')]

    async def patch(self, call_id: str, status: CallStatus, transcript: Optional[str] = UNSET) -> None:
        fields: Dict[str, Any] = {'status': status.value}
        if transcript is not UNSET:
            fields['transcript'] = transcript
        result = self.supabase.table(self.table).update(fields).eq('id', call_id).execute()
        rows(result, 'updating call')

    async def patch_if_transcript_unset(self, call_id: str, status: CallStatus) -> bool:
        """Update status only while the call has no transcript. Returns whether a row changed."""
        result = (
            self.supabase.table(self.table)
            .update({'status': status.value})
            .eq('id', call_id)
            .is_('transcript', 'null')
            .execute()
        )
        return bool(rows(result, 'updating call status'))

    async def set_vapi_call_id(self, call_id: str, vapi_call_id: str) -> None:
        result = self.supabase.table(self.table).update({'vapiCallId': vapi_call_id}).eq('id', call_id).execute()
        rows(result, 'linking Vapi call')

_FIELD_MESSAGES = {
    'name': "Name is required",
    'phoneNumber': "Valid phone number is required",
    'customQuestions': "Memory prompt is required",
}

class CallRequest(BaseModel):
    """Form data for a memory collection call"""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1)
    phone_number: str = Field(alias='phoneNumber', min_length=10)
    custom_questions: str = Field(alias='customQuestions', min_length=1)
    family_member_name: Optional[str] = Field(default=None, alias='familyMemberName')

    @classmethod
    def from_form(cls, data: Dict[str, Any]) -> 'CallRequest':
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            error = e.errors()[0]
            field = error['loc'][0] if error['loc'] else ''
            raise ValidationFailed(_FIELD_MESSAGES.get(field, error['msg']))

class CallInitiator:
    def __init__(self, call_store: CallStore, vapi_client):
        self.calls = call_store
        self.vapi = vapi_client

    async def initiate(self, request: CallRequest, user_id: Optional[str] = None) -> CallRecord:
        """Record the call as pending, place it, then link the Vapi call id"""
        family_member_name = request.family_member_name or request.name
        call_id = await self.calls.insert(
            phone_number=request.phone_number,
            name=request.name,
            question=request.custom_questions,
            user_id=user_id,
            family_member_name=family_member_name,
        )

        try:
            vapi_call_id = await self.vapi.create_phone_call(
                name=request.name,
                phone_number=request.phone_number,
                custom_questions=request.custom_questions,
            )
        except Exception as e:
            logger.error(f"Error making memory call {call_id}: {str(e)}")
            await self.calls.patch(call_id, CallStatus.FAILED)
            raise

        try:
            await self.calls.set_vapi_call_id(call_id, vapi_call_id)
        except Exception as e:
            # The phone is already ringing; webhooks for it will not match until linked by hand
            logger.error(
                f"Call {call_id} was placed as Vapi call {vapi_call_id} but linking failed: {str(e)}"
            )
            raise
        logger.info(f"Call {call_id} placed as Vapi call {vapi_call_id}")
        return CallRecord(
            id=call_id,
            phone_number=request.phone_number,
            name=request.name,
            question=request.custom_questions,
            vapi_call_id=vapi_call_id,
            user_id=user_id,
            family_member_name=family_member_name,
        )
