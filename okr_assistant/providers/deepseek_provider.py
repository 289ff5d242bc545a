"""
DeepSeek Provider

Secondary provider reached through DeepSeek's OpenAI-compatible API.
Single-turn conversational answers only.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

from okr_assistant.providers.azure_openai_provider import OpenAIChatProvider
from okr_assistant.providers.base import Provider

logger = logging.getLogger(__name__)


class DeepSeekProvider(OpenAIChatProvider):
    """DeepSeek chat backend (no function calling)"""

    provider = Provider.DEEPSEEK
    author_name = "AI Assistant (DeepSeek)"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        client=None,
        **kwargs
    ):
        if client is None and api_key:
            client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        super().__init__(client=client, model=model, **kwargs)

        if self.enabled:
            logger.info(f"DeepSeek provider initialized with model: {model}")
        else:
            logger.warning("DeepSeek provider disabled - DEEPSEEK_API_KEY not set")
