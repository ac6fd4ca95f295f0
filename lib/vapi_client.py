import logging
from typing import Optional

import aiohttp

from lib.config import get_settings, Settings
from lib.error_handler import CallPlacementError, ConfigurationError

logger = logging.getLogger(__name__)

class VapiClient:
    """Places outbound phone calls through the Vapi REST API"""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.api_token = settings.vapi_api_token
        self.assistant_id = settings.vapi_assistant_id
        self.phone_number_id = settings.vapi_phone_number_id
        self.base_url = settings.vapi_base_url.rstrip('/')

    def _payload(self, name: str, phone_number: str, custom_questions: str) -> dict:
        return {
            'assistantId': self.assistant_id,
            'phoneNumberId': self.phone_number_id,
            'customer': {
                'number': phone_number,
            },
            'assistantOverrides': {
                'variableValues': {
                    'name': name,
                    'customQuestions': custom_questions,
                },
            },
        }

    async def create_phone_call(self, name: str, phone_number: str, custom_questions: str) -> str:
        """Ask Vapi to call phone_number and return the provider's call id"""
        if not self.api_token:
            raise ConfigurationError("VAPI_API_TOKEN environment variable is not set")

        headers = {
            'Authorization': f"Bearer {self.api_token}",
            'Content-Type': 'application/json',
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/call/phone",
                    json=self._payload(name, phone_number, custom_questions),
                    headers=headers
                ) as response:
                    if response.status < 200 or response.status >= 300:
                        error_text = await response.text()
                        logger.error(f"Vapi rejected call request: {response.status} {error_text}")
                        raise CallPlacementError(
                            f"API request failed with status {response.status}: {error_text}",
                            provider_status=response.status
                        )
                    data = await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Failed to reach Vapi: {str(e)}")
            raise CallPlacementError(f"Failed to reach Vapi: {str(e)}")

        call_id = data.get('id') or data.get('callId')
        if not call_id:
            raise CallPlacementError(f"Vapi response did not include a call id: {data}")
        logger.info(f"Vapi call created: {call_id}")
        return call_id
