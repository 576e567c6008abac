"""Chat completion service used to answer questions about journal entries."""
import logging
from typing import Dict, List, Optional

from journal_search_server.config import settings
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "I couldn't generate a response based on your journal entries."


class ChatService:
    """Thin wrapper over OpenAI chat completions."""

    def __init__(self,
                 model_name: str = settings.chat_model,
                 max_tokens: int = settings.chat_max_tokens,
                 client: Optional[AsyncOpenAI] = None):
        self.model_name = model_name
        self.max_tokens = max_tokens
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key,
                                            base_url=settings.openai_base_url,
                                            timeout=settings.request_timeout)

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """Send role/content messages and return the assistant's reply text."""
        completion = await self.client.chat.completions.create(
            model=self.model_name,
            messages=messages,
            max_completion_tokens=self.max_tokens)
        answer = completion.choices[0].message.content if completion.choices else None
        return answer or FALLBACK_ANSWER
