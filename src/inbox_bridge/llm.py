"""Text generation for prompt replies and email summaries."""

import logging
from typing import Protocol

import litellm
from litellm import acompletion

from . import config
from .errors import InternalError

# LiteLLM prints proxy hints and debug banners otherwise
litellm.suppress_debug_info = True
logging.getLogger("LiteLLM").setLevel(logging.CRITICAL)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an AI assistant built by xAI, designed to help with email tasks efficiently."
)
EMPTY_RESPONSE = "No response generated."


class TextGenerator(Protocol):
    """Anything that turns a prompt string into a reply string."""

    async def generate(self, prompt: str) -> str:
        ...


class LiteLLMTextGenerator:
    """TextGenerator backed by ``litellm.acompletion``.

    The model string selects the provider (``groq/...`` by default), and the
    provider's API key is read from the environment by LiteLLM.
    """

    def __init__(
        self,
        model: str = config.LLM_MODEL,
        max_tokens: int = config.LLM_MAX_TOKENS,
        temperature: float = config.LLM_TEMPERATURE,
        timeout: float = config.PROVIDER_TIMEOUT,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        """Send one user message under the fixed system prompt.

        Raises:
            InternalError: If the LLM provider call fails
        """
        try:
            response = await acompletion(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Text generation failed with {self.model}: {e!s}")
            raise InternalError(f"Text generation error: {e!s}") from e

        content = ""
        if response.choices:
            message = response.choices[0].message
            if message and message.content:
                content = message.content
        return content or EMPTY_RESPONSE
