from openai import OpenAI
from typing import Dict, List, Optional
from lib.config import get_settings, Settings
from lib.error_handler import AppError

class OpenAIClient:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        settings = settings or get_settings()
        self.client = client or OpenAI(api_key=settings.openai_api_key)
        self.chat_model = settings.openai_chat_model
        self.embedding_model = settings.openai_embedding_model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed a batch of texts, preserving input order
        """
        try:
            response = self.client.embeddings.create(
                model=self.embedding_model,
                input=texts
            )
            if not response.data:
                raise Exception("No embedding data returned from OpenAI")
            ordered = sorted(response.data, key=lambda item: item.index)
            return [item.embedding for item in ordered]

        except Exception as e:
            raise AppError(f"Embedding failed: {str(e)}", status_code=500)

    def generate_response(self, messages: List[Dict[str, str]], max_tokens: Optional[int] = None) -> str:
        """
        Generate a chat completion for the given messages
        """
        try:
            kwargs = {"model": self.chat_model, "messages": messages}
            if max_tokens:
                kwargs["max_tokens"] = max_tokens
            response = self.client.chat.completions.create(**kwargs)

            # Extract the response text
            return response.choices[0].message.content or ""

        except Exception as e:
            raise AppError(f"Response generation failed: {str(e)}", status_code=500)
