import asyncio
import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Optional

from pydantic import BaseModel

from api.services.calls import CallRecord
from lib.error_handler import ErrorHandler

logger = logging.getLogger(__name__)

class IngestionRequest(BaseModel):
    user_id: Optional[str] = None
    family_member_name: Optional[str] = None
    transcript: str
    call_id: str
    # Milliseconds since the epoch
    timestamp: int

    @classmethod
    def for_call(cls, record: CallRecord, transcript: str) -> 'IngestionRequest':
        return cls(
            user_id=record.user_id,
            family_member_name=record.family_member_name,
            transcript=transcript,
            call_id=record.id,
            timestamp=int(time.time() * 1000),
        )

def format_document(transcript: str, family_member_name: Optional[str] = None) -> str:
    if family_member_name:
        return f"Conversation with {family_member_name}:\n\n{transcript}"
    return f"Conversation:\n\n{transcript}"

def namespace_for(user_id: Optional[str], global_namespace: str = 'global') -> str:
    return user_id or global_namespace

class IngestionTrigger:
    """Fire-and-forget indexing of completed call transcripts"""

    def __init__(
        self,
        vector_store,
        global_namespace: str = 'global',
        capturer=None,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
    ):
        self.vector_store = vector_store
        self.global_namespace = global_namespace
        self.capturer = capturer
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='ingestion'
        )

    def schedule(self, request: IngestionRequest, record: Optional[CallRecord] = None) -> Future:
        """Queue a transcript for indexing and return without waiting for it"""
        logger.info(f"Scheduling ingestion for call {request.call_id}")
        return self.executor.submit(self.run, request, record)

    def run(self, request: IngestionRequest, record: Optional[CallRecord] = None) -> bool:
        try:
            self.add_call_to_rag(request)
            if self.capturer is not None and record is not None and record.user_id:
                asyncio.run(self.capturer.capture(record, request.transcript))
            return True
        except Exception as e:
            ErrorHandler.handle_ingestion_error(e)
            return False

    def add_call_to_rag(self, request: IngestionRequest) -> None:
        if self.vector_store is None:
            logger.warning(f"Vector store not available - skipping ingestion for call {request.call_id}")
            return
        namespace = namespace_for(request.user_id, self.global_namespace)
        logger.info(f"Adding call {request.call_id} to namespace {namespace}")
        self.vector_store.add(
            namespace=namespace,
            text=format_document(request.transcript, request.family_member_name),
            metadata={
                'call_id': request.call_id,
                'timestamp': request.timestamp,
                'family_member_name': request.family_member_name,
            },
            document_id=f"call-{request.call_id}",
        )
        logger.info(f"Call {request.call_id} indexed")

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
