"""LLM client for structured record extraction"""
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from .config import LLM_MAX_TOKENS, LLM_TIMEOUT, OPENAI_API_KEY, OPENAI_BASE_URL
from .exceptions import AiRequestFailure

logger = logging.getLogger(__name__)


class LLMClient:
    """Client for an OpenAI-compatible chat completions API"""

    def __init__(self,
                 api_key: Optional[str] = OPENAI_API_KEY,
                 base_url: Optional[str] = OPENAI_BASE_URL,
                 max_tokens: int = LLM_MAX_TOKENS,
                 timeout: float = LLM_TIMEOUT):
        if not api_key:
            raise ValueError("OPENAI_API_KEY not set in environment variables")
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.max_tokens = max_tokens

    async def complete(self, model: str, system_prompt: str, user_content: str) -> str:
        """
        Run one chat completion and return the assistant's text

        Raises:
            AiRequestFailure: on any transport, API or timeout error
        """
        try:
            response = await self.client.chat.completions.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=0,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise AiRequestFailure(f"AI request failed ({model})", details=str(e)) from e

        if not response.choices:
            raise AiRequestFailure(f"AI response from {model} had no choices")
        return response.choices[0].message.content or ""
