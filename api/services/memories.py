import logging
import time
from typing import Any, Dict, List, Optional

from lib.database import rows
from lib.error_handler import NotFound

logger = logging.getLogger(__name__)

class MemoryStore:
    def __init__(self, supabase_client, table: str = 'memories'):
        self.supabase = supabase_client
        self.table = table

    async def get_user_memories(self, user_id: str) -> List[Dict[str, Any]]:
        """All memories for a user, newest first"""
        result = (
            self.supabase.table(self.table)
            .select('*')
            .eq('userId', user_id)
            .order('createdAt', desc=True)
            .execute()
        )
        return rows(result, 'listing memories')

    async def find_by_call_id(self, user_id: str, call_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.supabase.table(self.table)
            .select('*')
            .eq('userId', user_id)
            .eq('callId', call_id)
            .limit(1)
            .execute()
        )
        found = rows(result, 'fetching memory for call')
        return found[0] if found else None

    async def create_memory(
        self,
        user_id: str,
        name: str,
        phone_number: str,
        call_id: Optional[str] = None,
        custom_questions: Optional[str] = None,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> str:
        data = {
            'userId': user_id,
            'name': name,
            'phoneNumber': phone_number,
            'callId': call_id,
            'customQuestions': custom_questions,
            'transcript': transcript,
            'summary': summary,
            'createdAt': int(time.time() * 1000),
        }
        result = self.supabase.table(self.table).insert(data).execute()
        inserted = rows(result, 'creating memory')
        if not inserted:
            raise ValueError("Insert into memories returned no row")
        memory_id = str(inserted[0]['id'])
        logger.info(f"Memory {memory_id} created for user {user_id}")
        return memory_id

    async def update_memory(
        self,
        memory_id: str,
        user_id: str,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> str:
        result = self.supabase.table(self.table).select('*').eq('id', memory_id).execute()
        found = rows(result, 'fetching memory')
        if not found or found[0].get('userId') != user_id:
            raise NotFound("Memory not found or unauthorized")

        result = (
            self.supabase.table(self.table)
            .update({'transcript': transcript, 'summary': summary})
            .eq('id', memory_id)
            .execute()
        )
        rows(result, 'updating memory')
        return memory_id
