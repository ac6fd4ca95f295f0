import logging
import time
from typing import Any, Dict, List, Optional

from lib.database import rows
from lib.error_handler import NotFound, ValidationFailed
from lib.openai_client import OpenAIClient

logger = logging.getLogger(__name__)

def _parse_cursor(cursor: Optional[str]) -> int:
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except ValueError:
        offset = -1
    if offset < 0:
        raise ValidationFailed("cursor must be a non-negative integer")
    return offset

ASSISTANT_INSTRUCTIONS = (
    "You are Million Ears' family memory assistant, helping users explore and connect with "
    "their preserved family memories. You have access to memories captured from phone "
    "conversations with family members: life stories, wisdom, historical accounts and "
    "personal moments.\n\n"
    "Be warm, empathetic and respectful. Quote directly from the memories when it helps "
    "preserve the family member's voice, connect related memories, and suggest related "
    "topics the user might want to explore. If you don't have information about something, "
    "say so honestly. If no memories are available yet, gently guide the user to record "
    "some first."
)

DEFAULT_STORY = (
    "There is one story that should be present by default, this is it:\n\n"
    "This is the story of how my grandmother failed english class. She had to spell just "
    "one word right, the word coffee, but she spelt it as \"KAPHY\"."
)

class ChatEngine:
    def __init__(
        self,
        supabase_client,
        openai_client: OpenAIClient,
        vector_store=None,
        threads_table: str = 'chat_threads',
        messages_table: str = 'chat_messages',
        search_limit: int = 10,
    ):
        self.supabase = supabase_client
        self.openai = openai_client
        self.vector = vector_store
        self.threads_table = threads_table
        self.messages_table = messages_table
        self.search_limit = search_limit
        self.MAX_HISTORY = 10
        self.MAX_THREADS = 50

    async def create_thread(self, user_id: str) -> Dict[str, Any]:
        data = {'userId': user_id, 'createdAt': int(time.time() * 1000)}
        result = self.supabase.table(self.threads_table).insert(data).execute()
        created = rows(result, 'creating thread')
        if not created:
            raise ValueError("Insert into chat threads returned no row")
        logger.info(f"Thread {created[0]['id']} created for user {user_id}")
        return created[0]

    async def get_thread(self, thread_id: str, user_id: str) -> Dict[str, Any]:
        result = self.supabase.table(self.threads_table).select('*').eq('id', thread_id).execute()
        found = rows(result, 'fetching thread')
        if not found or found[0].get('userId') != user_id:
            raise NotFound("Thread not found or unauthorized")
        return found[0]

    async def list_threads(self, user_id: str) -> List[Dict[str, Any]]:
        result = (
            self.supabase.table(self.threads_table)
            .select('*')
            .eq('userId', user_id)
            .order('createdAt', desc=True)
            .limit(self.MAX_THREADS)
            .execute()
        )
        return rows(result, 'listing threads')

    async def list_messages(
        self,
        thread_id: str,
        user_id: str,
        num_items: int = 50,
        cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page of a thread's messages, oldest first. The cursor is an offset."""
        if num_items < 1:
            raise ValidationFailed("numItems must be at least 1")
        offset = _parse_cursor(cursor)
        await self.get_thread(thread_id, user_id)
        result = (
            self.supabase.table(self.messages_table)
            .select('*')
            .eq('threadId', thread_id)
            .order('createdAt')
            .order('id')
            .range(offset, offset + num_items - 1)
            .execute()
        )
        page = rows(result, 'listing messages')
        return {
            'page': page,
            'isDone': len(page) < num_items,
            'continueCursor': str(offset + len(page)),
        }

    def _build_system_prompt(self, context: str) -> str:
        """Build the system prompt with context"""
        base_prompt = f"{ASSISTANT_INSTRUCTIONS}\n\n{DEFAULT_STORY}"
        if context:
            return f"{base_prompt}\n\nRelevant memory transcripts:\n{context}"
        return base_prompt

    def _search_memories(self, user_id: str, query: str) -> str:
        if self.vector is None:
            logger.warning("Vector store not available for search")
            return ""
        try:
            # Only the user's own namespace; anonymous calls in the global one are never searched
            results = self.vector.search(user_id, query, limit=self.search_limit)
        except Exception as e:
            logger.error(f"Memory search error: {str(e)}")
            return ""
        return "\n\n".join(result['text'] for result in results if result.get('text'))

    async def _recent_history(self, thread_id: str) -> List[Dict[str, str]]:
        result = (
            self.supabase.table(self.messages_table)
            .select('*')
            .eq('threadId', thread_id)
            .order('createdAt', desc=True)
            .order('id', desc=True)
            .limit(self.MAX_HISTORY)
            .execute()
        )
        history = rows(result, 'loading history')
        return [
            {'role': msg['role'], 'content': msg['content']}
            for msg in reversed(history)
        ]

    async def _store_message(self, thread_id: str, user_id: str, role: str, content: str) -> None:
        data = {
            'threadId': thread_id,
            'userId': user_id,
            'role': role,
            'content': content,
            'createdAt': int(time.time() * 1000),
        }
        result = self.supabase.table(self.messages_table).insert(data).execute()
        rows(result, 'storing message')

    async def send_message(self, thread_id: str, user_id: str, message: str) -> Dict[str, Any]:
        """Answer a question about the user's memories and record both sides of the exchange"""
        await self.get_thread(thread_id, user_id)

        history = await self._recent_history(thread_id)
        await self._store_message(thread_id, user_id, 'user', message)

        context = self._search_memories(user_id, message)
        messages = [{"role": "system", "content": self._build_system_prompt(context)}]
        messages.extend(history)
        messages.append({"role": "user", "content": f"User question: {message}"})

        response = self.openai.generate_response(messages)
        await self._store_message(thread_id, user_id, 'assistant', response)
        logger.info(f"Answered message in thread {thread_id}")

        return {
            'success': True,
            'response': response,
            'context_used': bool(context),
        }
