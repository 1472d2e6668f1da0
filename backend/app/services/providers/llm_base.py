"""Async LLM provider interface and implementations.

Both google-genai and openai SDK clients are sync; calls run through
asyncio.to_thread and are bounded by asyncio.wait_for. There is no transport
level retry here: the pipeline owns the retry policy for each stage.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict, Any

from app.services.providers.response_parser import parse_json_response

logger = logging.getLogger(__name__)


class LLMTimeoutError(TimeoutError):
    """Raised when an LLM call exceeds the configured timeout."""
    pass


DEFAULT_TIMEOUT = 90.0


class BaseLLMProvider(ABC):
    """Abstract base class for async LLM providers."""

    def __init__(self, api_key: str, model_name: str, temperature: float = 1.0):
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.timeout: float = DEFAULT_TIMEOUT

    def set_timeout(self, seconds: float):
        if seconds <= 0:
            raise ValueError(f"LLM timeout must be positive, got {seconds}")
        self.timeout = float(seconds)

    async def _call(self, sync_fn, *args, label: str):
        """Run a sync SDK call in a worker thread under the provider timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(sync_fn, *args), timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutError(f"LLM {label} call timed out after {self.timeout}s")

    @abstractmethod
    async def generate_json(
        self, prompt: str, system_prompt: Optional[str] = None, **kwargs,
    ) -> Dict[str, Any]:
        pass


class GeminiProvider(BaseLLMProvider):
    """Async Gemini provider using google-genai SDK."""

    def __init__(
        self, api_key: Optional[str] = None,
        service_account_path: Optional[str] = None,
        model_name: str = "",
        temperature: float = 1.0,
    ):
        super().__init__(api_key or "", model_name, temperature)

        from google import genai

        if api_key:
            self.client = genai.Client(api_key=api_key)
            self.auth_method = "api_key"
        elif service_account_path:
            sa_path = Path(service_account_path)
            if not sa_path.exists():
                raise FileNotFoundError(f"Service account file not found: {sa_path}")
            from google.oauth2 import service_account as sa_module
            with open(sa_path) as f:
                sa_info = json.load(f)
            credentials = sa_module.Credentials.from_service_account_info(
                sa_info, scopes=["https://www.googleapis.com/auth/cloud-platform"],
            )
            self.client = genai.Client(
                vertexai=True, project=sa_info.get("project_id", ""), credentials=credentials,
            )
            self.auth_method = "service_account"
        else:
            raise ValueError("Either api_key or service_account_path must be provided")

    def _config(self, system_prompt):
        from google.genai import types

        config_dict = {
            "temperature": self.temperature,
            "response_mime_type": "application/json",
        }
        if system_prompt:
            config_dict["system_instruction"] = system_prompt
        return types.GenerateContentConfig(**config_dict)

    def _sync_generate_json(self, prompt, system_prompt):
        response = self.client.models.generate_content(
            model=self.model_name, contents=prompt, config=self._config(system_prompt),
        )
        return parse_json_response(response.text)

    async def generate_json(self, prompt, system_prompt=None, **kwargs):
        return await self._call(self._sync_generate_json, prompt, system_prompt, label="generate_json")


class OpenAIProvider(BaseLLMProvider):
    """Async OpenAI provider."""

    def __init__(self, api_key: str, model_name: str = "", temperature: float = 1.0):
        super().__init__(api_key, model_name, temperature)
        from openai import OpenAI
        self.client = OpenAI(api_key=api_key)

    def _messages(self, prompt, system_prompt):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _sync_generate_json(self, prompt, system_prompt):
        response = self.client.chat.completions.create(
            model=self.model_name,
            messages=self._messages(prompt, system_prompt),
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        return parse_json_response(response.choices[0].message.content)

    async def generate_json(self, prompt, system_prompt=None, **kwargs):
        return await self._call(self._sync_generate_json, prompt, system_prompt, label="generate_json")


def create_llm_provider(
    provider: str, api_key: str = "", model_name: str = "",
    temperature: float = 0.1, service_account_path: str = "",
) -> BaseLLMProvider:
    """Plain constructor with no credential policy. See providers.factory for selection."""
    if not model_name:
        raise ValueError(f"No model configured for LLM provider '{provider}'")
    if provider == "gemini":
        kwargs = {"model_name": model_name, "temperature": temperature}
        if api_key:
            kwargs["api_key"] = api_key
        elif service_account_path:
            kwargs["service_account_path"] = service_account_path
        return GeminiProvider(**kwargs)
    elif provider == "openai":
        return OpenAIProvider(
            api_key=api_key, model_name=model_name, temperature=temperature,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
