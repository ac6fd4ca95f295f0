import logging
import uuid
from typing import Dict, List, Any, Optional

from pinecone import Pinecone, ServerlessSpec

from lib.config import get_settings, Settings
from lib.error_handler import AppError
from lib.openai_client import OpenAIClient

logger = logging.getLogger(__name__)

def chunk_text(text: str, max_chars: int) -> List[str]:
    """Split text into chunks of at most max_chars, breaking on line boundaries where possible"""
    chunks: List[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:max_chars])
            line = line[max_chars:]
        if len(current) + len(line) > max_chars:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return [chunk for chunk in chunks if chunk.strip()]

class VectorStore:
    def __init__(
        self,
        openai_client: OpenAIClient,
        settings: Optional[Settings] = None,
        index=None,
        pinecone_client: Optional[Pinecone] = None,
    ):
        settings = settings or get_settings()
        self.openai = openai_client
        self.index_name = settings.pinecone_index
        self.dimension = settings.embedding_dimension  # OpenAI embedding dimension
        self.metric = "cosine"
        self.cloud = settings.pinecone_cloud
        self.region = settings.pinecone_region
        self.chunk_size = settings.rag_chunk_size
        self.host = settings.pinecone_host
        self._index = index
        if index is None and pinecone_client is None:
            pinecone_client = Pinecone(api_key=settings.pinecone_api_key)
        self.pc = pinecone_client
        logger.info(f"Vector store configured for index: {self.index_name}")

    @property
    def index(self):
        # Resolved lazily so the store can be built before the index exists
        if self._index is None:
            if self.host:
                self._index = self.pc.Index(self.index_name, host=self.host)
            else:
                self._index = self.pc.Index(self.index_name)
        return self._index

    def initialize_index(self) -> bool:
        """Ensure the index exists; returns True when it had to be created"""
        try:
            if self.index_name in self.pc.list_indexes().names():
                return False
            self.pc.create_index(
                name=self.index_name,
                dimension=self.dimension,
                metric=self.metric,
                spec=ServerlessSpec(cloud=self.cloud, region=self.region)
            )
            return True
        except Exception as e:
            raise AppError(f"Pinecone index creation error: {str(e)}")

    def add(
        self,
        namespace: str,
        text: str,
        metadata: Dict[str, Any],
        document_id: Optional[str] = None
    ) -> List[str]:
        """Chunk, embed and upsert a document under a namespace. Returns the vector ids."""
        document_id = document_id or str(uuid.uuid4())
        chunks = chunk_text(text, self.chunk_size)
        if not chunks:
            logger.warning(f"Nothing to index for document {document_id}")
            return []

        # Pinecone rejects null metadata values
        base_metadata = {k: v for k, v in metadata.items() if v is not None}

        embeddings = self.openai.embed(chunks)
        vectors = []
        for i, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
            vectors.append({
                'id': f"{document_id}-{i}",
                'values': embedding,
                'metadata': {
                    **base_metadata,
                    'text': chunk,
                    'document_id': document_id,
                    'chunk_index': i,
                }
            })

        try:
            self.index.upsert(vectors=vectors, namespace=namespace)
        except Exception as e:
            raise AppError(f"Pinecone storage error: {str(e)}", status_code=500)

        logger.info(f"Indexed {len(vectors)} chunk(s) for document {document_id} in namespace {namespace}")
        return [vector['id'] for vector in vectors]

    def search(self, namespace: str, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Search a namespace for chunks similar to the query"""
        query_embedding = self.openai.embed([query])[0]
        try:
            results = self.index.query(
                vector=query_embedding,
                namespace=namespace,
                top_k=limit,
                include_metadata=True
            )
        except Exception as e:
            raise AppError(f"Pinecone search error: {str(e)}", status_code=500)

        matches = []
        for match in results.matches:
            metadata = dict(match.metadata or {})
            matches.append({
                'id': match.id,
                'score': match.score,
                'text': metadata.get('text', ''),
                'metadata': metadata
            })
        return matches
