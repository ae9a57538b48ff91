"""Concrete implementations for AI completion adapters."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import Vendor

DEFAULT_MAX_TOKENS = 300
DEFAULT_TIMEOUT = 30.0


class ProviderError(Exception):
    """A completion call failed. Carries the vendor and the underlying cause."""

    def __init__(self, vendor: Vendor, cause: BaseException):
        self.vendor = vendor
        self.cause = cause
        super().__init__(f"{vendor.value} completion failed: {cause!r}")


class LLM(ABC):
    """Abstract Base Class for all completion adapters.

    Subclasses only differ in how they build the request and where the text
    lives in the reply. ``chat`` is the single entry point callers use.
    """

    vendor: Vendor
    default_model: str

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.timeout = timeout

    async def chat(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        model: Optional[str] = None,
    ) -> str:
        """Sends a single-turn prompt and returns the reply text.

        Parameters
        ----------
        prompt : str
            The user prompt.
        max_tokens : int, default=300
            Completion token budget.
        model : str, optional
            Overrides the adapter's default model.

        Returns
        -------
        str
            The reply text, stripped of surrounding whitespace.

        Raises
        ------
        ProviderError
            If the vendor call fails, times out or returns no text.
        """
        messages = [{"role": "user", "content": prompt}]
        try:
            response = await asyncio.wait_for(
                self.generate_response(
                    messages, model or self.default_model, max_tokens=max_tokens
                ),
                timeout=self.timeout,
            )
            content = self.extract_content(response)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(self.vendor, e) from e

        if not content or not content.strip():
            raise ProviderError(self.vendor, ValueError("empty completion"))
        return content.strip()

    @abstractmethod
    async def generate_response(
        self, messages: List[Dict[str, Any]], model: str, **kwargs: Any
    ) -> Any:
        """Generates a response from the vendor.

        This method should return the vendor's native response object
        directly from their SDK.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            A list of message dictionaries, conforming to the vendor's
            expected format.
        model : str
            The specific model to use for the generation.
        **kwargs : Any
            Request parameters (currently ``max_tokens``).

        Returns
        -------
        Any
            The vendor's native response object.
        """
        pass

    @abstractmethod
    def extract_content(self, response: Any) -> Optional[str]:
        """Extracts the text content from the vendor's native response object.

        Parameters
        ----------
        response : Any
            The vendor's native response object from generate_response.

        Returns
        -------
        str
            The extracted text content from the response.
        """
        pass


class Anthropic(LLM):
    vendor = Vendor.ANTHROPIC
    default_model = "claude-3-haiku-20240307"

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        from anthropic import AsyncAnthropic

        super().__init__(api_key, timeout)
        self.client = AsyncAnthropic(api_key=api_key)

    async def generate_response(self, messages, model, **kwargs):
        return await self.client.messages.create(
            model=model, messages=messages, **kwargs
        )

    def extract_content(self, response: Any) -> Optional[str]:
        return response.content[0].text


class OpenAI(LLM):
    vendor = Vendor.OPENAI
    default_model = "gpt-3.5-turbo"
    base_url: Optional[str] = None

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        from openai import AsyncOpenAI

        super().__init__(api_key, timeout)
        self.client = AsyncOpenAI(api_key=api_key, base_url=self.base_url)

    async def generate_response(self, messages, model, **kwargs):
        return await self.client.chat.completions.create(
            messages=messages, model=model, **kwargs
        )

    def extract_content(self, response: Any) -> Optional[str]:
        return response.choices[0].message.content


class Groq(OpenAI):
    vendor = Vendor.GROQ
    default_model = "llama-3.1-8b-instant"
    base_url = "https://api.groq.com/openai/v1"


class Mistral(OpenAI):
    vendor = Vendor.MISTRAL
    default_model = "mistral-small-latest"
    base_url = "https://api.mistral.ai/v1"


class Gemini(LLM):
    vendor = Vendor.GEMINI
    default_model = "gemini-1.5-flash"

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        from google import genai

        super().__init__(api_key, timeout)
        self.client = genai.Client(api_key=api_key)

    async def generate_response(self, messages, model, **kwargs):
        from google.genai import types

        config = types.GenerateContentConfig(
            max_output_tokens=kwargs.get("max_tokens", DEFAULT_MAX_TOKENS)
        )
        return await self.client.aio.models.generate_content(
            model=model, contents=messages[-1]["content"], config=config
        )

    def extract_content(self, response: Any) -> Optional[str]:
        return response.text
