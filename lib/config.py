from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra='ignore')

    # OpenAI settings
    openai_api_key: str = ''
    openai_chat_model: str = 'gpt-4o'
    openai_embedding_model: str = 'text-embedding-3-small'

    # Supabase settings
    supabase_url: str = ''
    supabase_key: str = ''
    calls_table: str = 'calls'
    memories_table: str = 'memories'
    threads_table: str = 'chat_threads'
    messages_table: str = 'chat_messages'

    # Pinecone settings
    pinecone_api_key: str = ''
    pinecone_index: str = 'million-ears'
    pinecone_host: Optional[str] = None
    pinecone_cloud: str = 'aws'
    pinecone_region: str = 'us-east-1'
    embedding_dimension: int = 1536

    # Vapi settings
    vapi_api_token: str = ''
    vapi_assistant_id: str = ''
    vapi_phone_number_id: str = ''
    vapi_base_url: str = 'https://api.vapi.ai'

    # RAG / ingestion settings
    rag_global_namespace: str = 'global'
    rag_chunk_size: int = 2000
    rag_search_limit: int = 10
    ingestion_workers: int = 4
    memory_extraction_enabled: bool = False

    log_level: str = 'INFO'

@lru_cache
def get_settings() -> Settings:
    return Settings()
