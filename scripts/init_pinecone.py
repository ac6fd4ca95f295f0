from lib.config import get_settings
from lib.openai_client import OpenAIClient
from lib.vector_store import VectorStore

def init_pinecone():
    """Initialize the Pinecone index for call transcripts"""
    try:
        settings = get_settings()
        store = VectorStore(OpenAIClient(settings), settings)
        if store.initialize_index():
            print(f"Index '{settings.pinecone_index}' created successfully!")
        else:
            print(f"Index '{settings.pinecone_index}' already exists.")

    except Exception as e:
        print(f"Error initializing Pinecone: {str(e)}")
        raise

if __name__ == "__main__":
    init_pinecone()
