import json
import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, ValidationError

from api.services.calls import CallRecord
from api.services.memories import MemoryStore
from lib.openai_client import OpenAIClient

logger = logging.getLogger(__name__)

MemoryCategory = Literal[
    'life_story', 'wisdom', 'historical', 'relationship', 'passion', 'practical', 'emotional'
]

CAPTURE_INSTRUCTIONS = """You are a memory preservation specialist for Million Ears.

Extract meaningful memories from phone call transcripts between elderly family members
and our AI assistant. These memories will be preserved for future generations.

Categorize each memory as one of:
- life_story: major life events, career, education, migrations
- wisdom: life lessons, advice, philosophical insights
- historical: historical events witnessed, social or political changes
- relationship: stories about family members, friends, relationships
- passion: hobbies, interests, things they loved doing
- practical: recipes, techniques, other practical knowledge
- emotional: expressions of love, regrets, deep emotional moments

Return 3-7 substantive memories. Each memory is an object:
{"title": "...", "content": "...", "category": "...", "significance": "..."}
Keep names and relationships exactly as spoken and include the details that bring
each story to life.

Return ONLY a JSON array. No markdown, no code blocks, no additional text."""

class ExtractedMemory(BaseModel):
    title: str
    content: str
    category: MemoryCategory
    significance: str = ""

def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()

def parse_memories(raw: str) -> List[ExtractedMemory]:
    try:
        data = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError:
        logger.warning("Memory extraction returned invalid JSON")
        return []
    if not isinstance(data, list):
        logger.warning("Memory extraction did not return a JSON array")
        return []

    memories = []
    for item in data:
        try:
            memories.append(ExtractedMemory.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed memory: {str(e)}")
    return memories

def render_summary(memories: List[ExtractedMemory]) -> str:
    return "\n\n".join(
        f"{memory.title} ({memory.category}): {memory.content}" for memory in memories
    )

class MemoryCapturer:
    def __init__(self, openai_client: OpenAIClient, memory_store: MemoryStore):
        self.openai = openai_client
        self.memories = memory_store

    def extract(self, transcript: str) -> List[ExtractedMemory]:
        raw = self.openai.generate_response([
            {"role": "system", "content": CAPTURE_INSTRUCTIONS},
            {"role": "user", "content": transcript},
        ])
        return parse_memories(raw)

    async def capture(self, record: CallRecord, transcript: str) -> Optional[str]:
        """Extract memories from a call transcript and store them for the call's owner"""
        if not record.user_id:
            return None
        existing = await self.memories.find_by_call_id(record.user_id, record.id)
        if existing:
            logger.info(f"Call {record.id} already has memory {existing['id']}, skipping capture")
            return str(existing['id'])
        extracted = self.extract(transcript)
        logger.info(f"Extracted {len(extracted)} memories from call {record.id}")
        return await self.memories.create_memory(
            user_id=record.user_id,
            name=record.family_member_name or record.name,
            phone_number=record.phone_number,
            call_id=record.id,
            custom_questions=record.question,
            transcript=transcript,
            summary=render_summary(extracted) or None,
        )
