"""
Inference backends.

Every backend exposes the same two coroutines: ``generate(prompt, timeout)``
which returns the generated review text, and ``list_models()`` used by the
health check. Library specific failures are translated into the error kinds
from ``reviewer.errors`` so the request handler never sees a provider SDK
exception.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

import anthropic
import httpx
import ollama
import openai
from anthropic import AsyncAnthropic
from google import genai
from google.genai.errors import APIError as GeminiAPIError
from openai import AsyncOpenAI

from reviewer.config import Settings
from reviewer.constants import REVIEW_SYSTEM_PROMPT
from reviewer.errors import BackendError, InvalidBackendResponse, ReviewTimeout


class InferenceBackend:
    """Base class holding the deadline guard shared by all providers."""

    name = "LLM"
    provider = ""

    def __init__(self, url: str, model: str, max_tokens: int = 800, temperature: float = 0.3):
        self.url = url
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate(self, prompt: str, timeout: float) -> str:
        """
        Run a single completion bounded by ``timeout`` seconds.

        The completion runs as a task that ``asyncio.wait_for`` cancels when
        the deadline passes, which aborts the in-flight HTTP request.

        Raises:
            ReviewTimeout: the deadline elapsed first.
            BackendError: the backend was unreachable or returned non-2xx.
            InvalidBackendResponse: no generated text in the response.
        """
        try:
            text = await asyncio.wait_for(self._complete(prompt), timeout=timeout)
        except (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException):
            logging.error(f"{self.name} did not answer within {timeout:g}s")
            raise ReviewTimeout(timeout)

        if not text:
            raise InvalidBackendResponse(self.name)
        return text

    async def _complete(self, prompt: str) -> Optional[str]:
        raise NotImplementedError

    async def list_models(self) -> List[str]:
        raise NotImplementedError

    def _messages(self, prompt: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]


class OllamaBackend(InferenceBackend):
    name = "Ollama"
    provider = "ollama"

    def __init__(self, url: str, model: str, **kwargs):
        super().__init__(url, model, **kwargs)
        self._client = ollama.AsyncClient(host=url)

    async def _complete(self, prompt: str) -> Optional[str]:
        try:
            response = await self._client.generate(
                model=self.model,
                prompt=prompt,
                stream=False,
                options={
                    "num_predict": self.max_tokens,
                    "temperature": self.temperature,
                    "top_p": 0.9,
                    "repeat_penalty": 1.1,
                },
            )
        except ollama.ResponseError as e:
            logging.error(f"Ollama error: {e.status_code} {e.error}")
            raise BackendError(self.name, e.status_code, e.error)
        except httpx.TimeoutException:
            raise
        except (httpx.HTTPError, ConnectionError) as e:
            raise BackendError(self.name, None, str(e))

        return response.get("response")

    async def list_models(self) -> List[str]:
        try:
            model_dict = await self._client.list()
        except ollama.ResponseError as e:
            raise BackendError(self.name, e.status_code, e.error)
        except (httpx.HTTPError, ConnectionError) as e:
            raise BackendError(self.name, None, str(e))

        return [m["model"] for m in model_dict["models"]]


class LlamaServerBackend(InferenceBackend):
    """llama.cpp server speaking the OpenAI-compatible chat API."""

    name = "Llama server"
    provider = "srvllama"

    async def _complete(self, prompt: str) -> Optional[str]:
        payload = {
            "model": self.model,
            "messages": self._messages(prompt),
            "stream": False,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            async with httpx.AsyncClient(base_url=self.url, timeout=None) as client:
                response = await client.post("/v1/chat/completions", json=payload)
        except httpx.TimeoutException:
            raise
        except httpx.HTTPError as e:
            raise BackendError(self.name, None, str(e))

        if not response.is_success:
            logging.error(f"Llama server error: {response.status_code} {response.text}")
            raise BackendError(self.name, response.status_code, response.text)

        choices = response.json().get("choices") or []
        if not choices:
            return None
        return choices[0].get("message", {}).get("content")

    async def list_models(self) -> List[str]:
        try:
            async with httpx.AsyncClient(base_url=self.url) as client:
                response = await client.get("/v1/models")
        except httpx.HTTPError as e:
            raise BackendError(self.name, None, str(e))

        if not response.is_success:
            raise BackendError(self.name, response.status_code, response.text)

        return [m["id"] for m in response.json().get("data", [])]


class OpenAIBackend(InferenceBackend):
    name = "OpenAI"
    provider = "openai"

    def __init__(self, url: Optional[str], model: str, api_key: str, **kwargs):
        super().__init__(url or "https://api.openai.com/v1", model, **kwargs)
        self._base_url = url
        self._api_key = api_key
        self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, max_retries=0)
            except openai.OpenAIError as e:
                logging.error(f"Failed to initialize {self.name} client: {e}")
                raise BackendError(self.name, None, f"{self.name} client is not initialized. Ensure API key is valid.")
        return self._client

    async def _complete(self, prompt: str) -> Optional[str]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except openai.APITimeoutError:
            raise TimeoutError()
        except openai.APIStatusError as e:
            logging.error(f"{self.name} API Error: {e}")
            raise BackendError(self.name, e.status_code, e.response.text)
        except openai.APIConnectionError as e:
            raise BackendError(self.name, None, str(e))

        if not response.choices:
            return None
        return response.choices[0].message.content

    async def list_models(self) -> List[str]:
        try:
            page = await self.client.models.list()
        except openai.APIStatusError as e:
            raise BackendError(self.name, e.status_code, e.response.text)
        except openai.APIConnectionError as e:
            raise BackendError(self.name, None, str(e))

        return [m.id for m in page.data]


class GrokBackend(OpenAIBackend):
    name = "Grok"
    provider = "grok"


class ClaudeBackend(InferenceBackend):
    name = "Claude"
    provider = "claude"

    def __init__(self, model: str, api_key: str, **kwargs):
        super().__init__("https://api.anthropic.com", model, **kwargs)
        self._client = AsyncAnthropic(api_key=api_key, max_retries=0)

    async def _complete(self, prompt: str) -> Optional[str]:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=REVIEW_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError:
            raise TimeoutError()
        except anthropic.APIStatusError as e:
            logging.error(f"Claude API Error: {e}")
            raise BackendError(self.name, e.status_code, e.response.text)
        except anthropic.APIConnectionError as e:
            raise BackendError(self.name, None, str(e))

        return "".join(block.text for block in response.content if block.type == "text")

    async def list_models(self) -> List[str]:
        try:
            page = await self._client.models.list()
        except anthropic.APIStatusError as e:
            raise BackendError(self.name, e.status_code, e.response.text)
        except anthropic.APIConnectionError as e:
            raise BackendError(self.name, None, str(e))

        return [m.id for m in page.data]


class GeminiBackend(InferenceBackend):
    name = "Gemini"
    provider = "gemini"

    def __init__(self, model: str, api_key: str, **kwargs):
        super().__init__("https://generativelanguage.googleapis.com", model, **kwargs)
        self._api_key = api_key
        self._client = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            try:
                self._client = genai.Client(api_key=self._api_key)
            except Exception as e:
                logging.error(f"Failed to initialize Gemini client: {e}")
                raise BackendError(self.name, None, "Gemini client is not initialized. Ensure GEMINI_API_KEY is set.")
        return self._client

    async def _complete(self, prompt: str) -> Optional[str]:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[prompt],
                config=genai.types.GenerateContentConfig(
                    system_instruction=REVIEW_SYSTEM_PROMPT,
                    max_output_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
            )
        except GeminiAPIError as e:
            logging.error(f"Gemini API Error: {e}")
            raise BackendError(self.name, e.code, e.message or str(e))
        except httpx.TimeoutException:
            raise
        except httpx.HTTPError as e:
            raise BackendError(self.name, None, str(e))

        return response.text

    async def list_models(self) -> List[str]:
        try:
            pager = await self.client.aio.models.list()
            return [m.name.removeprefix("models/") async for m in pager]
        except GeminiAPIError as e:
            raise BackendError(self.name, e.code, e.message or str(e))
        except httpx.HTTPError as e:
            raise BackendError(self.name, None, str(e))


BACKEND_MAP: Dict[str, Callable[[Settings], InferenceBackend]] = {
    "ollama": lambda s: OllamaBackend(
        s.OLLAMA_URL, s.OLLAMA_MODEL, max_tokens=s.MAX_TOKENS, temperature=s.TEMPERATURE
    ),
    "srvllama": lambda s: LlamaServerBackend(
        s.LLAMA_SERVER_URL, s.LLAMA_SERVER_MODEL, max_tokens=s.MAX_TOKENS, temperature=s.TEMPERATURE
    ),
    "openai": lambda s: OpenAIBackend(
        None, s.OPENAI_MODEL, s.OPENAI_API_KEY, max_tokens=s.MAX_TOKENS, temperature=s.TEMPERATURE
    ),
    "grok": lambda s: GrokBackend(
        "https://api.x.ai/v1", s.GROK_MODEL, s.GROK_API_KEY, max_tokens=s.MAX_TOKENS, temperature=s.TEMPERATURE
    ),
    "claude": lambda s: ClaudeBackend(
        s.ANTHROPIC_MODEL, s.ANTHROPIC_API_KEY, max_tokens=s.MAX_TOKENS, temperature=s.TEMPERATURE
    ),
    "gemini": lambda s: GeminiBackend(
        s.GEMINI_MODEL, s.GEMINI_API_KEY, max_tokens=s.MAX_TOKENS, temperature=s.TEMPERATURE
    ),
}


def create_backend(settings: Settings) -> InferenceBackend:
    provider = settings.LLM_PROVIDER.lower()
    if provider not in BACKEND_MAP:
        raise ValueError(f"Unknown LLM_PROVIDER '{settings.LLM_PROVIDER}'. Expected one of: {', '.join(BACKEND_MAP)}")
    return BACKEND_MAP[provider](settings)
