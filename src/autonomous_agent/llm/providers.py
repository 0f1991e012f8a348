"""
HTTP providers for the LLM router.

Each provider turns (model, prompt, system prompt, sampling) into one
HTTP request over a shared aiohttp session and normalizes the reply
into an LLMResponse.
"""

import logging
import os
from typing import Any

import aiohttp

from ..errors import LLMError
from .base import LLMResponse, estimate_tokens

logger = logging.getLogger(__name__)

OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
MISTRAL_BASE_URL = "https://api.mistral.ai/v1"


class Provider:
	"""Base class for an HTTP chat provider."""

	name = ""

	async def complete(
		self,
		session: aiohttp.ClientSession,
		model: str,
		prompt: str,
		system_prompt: str,
		temperature: float,
		max_tokens: int,
	) -> LLMResponse:
		raise NotImplementedError

	async def _post(
		self,
		session: aiohttp.ClientSession,
		url: str,
		payload: dict[str, Any],
		headers: dict[str, str],
	) -> dict[str, Any]:
		try:
			async with session.post(url, json=payload, headers=headers) as response:
				if response.status != 200:
					body = await response.text()
					raise LLMError(f"{self.name} request failed ({response.status}): {body[:500]}")
				return await response.json()
		except aiohttp.ClientError as e:
			raise LLMError(f"{self.name} request failed: {e}") from e


def _chat_messages(prompt: str, system_prompt: str) -> list[dict[str, str]]:
	messages = []
	if system_prompt:
		messages.append({"role": "system", "content": system_prompt})
	messages.append({"role": "user", "content": prompt})
	return messages


class OpenAIProvider(Provider):
	"""OpenAI chat completions, or any compatible gateway via OPENAI_BASE_URL."""

	name = "openai"

	async def complete(self, session, model, prompt, system_prompt, temperature, max_tokens):
		base_url = os.getenv("OPENAI_BASE_URL") or OPENAI_DEFAULT_BASE_URL
		api_key = os.getenv("OPENAI_API_KEY")
		if not api_key:
			raise LLMError("OPENAI_API_KEY not configured")

		data = await self._post(
			session,
			f"{base_url.rstrip('/')}/chat/completions",
			{
				"model": model,
				"messages": _chat_messages(prompt, system_prompt),
				"temperature": temperature,
				"max_tokens": max_tokens,
			},
			{"Authorization": f"Bearer {api_key}"},
		)

		try:
			content = data["choices"][0]["message"].get("content") or ""
		except (KeyError, IndexError) as e:
			raise LLMError(f"openai returned no choices: {e}") from e

		return LLMResponse(
			content=content,
			tokens_used=(data.get("usage") or {}).get("total_tokens", 0),
			model=model,
			provider=self.name,
		)


class GeminiProvider(Provider):
	"""Google Gemini generateContent."""

	name = "gemini"

	async def complete(self, session, model, prompt, system_prompt, temperature, max_tokens):
		api_key = os.getenv("GEMINI_API_KEY")
		if not api_key:
			raise LLMError("GEMINI_API_KEY not configured")

		full_prompt = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt

		data = await self._post(
			session,
			f"{GEMINI_BASE_URL}/models/{model}:generateContent",
			{
				"contents": [{"role": "user", "parts": [{"text": full_prompt}]}],
				"generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
			},
			{"x-goog-api-key": api_key},
		)

		try:
			parts = data["candidates"][0]["content"]["parts"]
		except (KeyError, IndexError) as e:
			raise LLMError(f"gemini returned no candidates: {e}") from e
		text = "".join(part.get("text", "") for part in parts)

		usage = (data.get("usageMetadata") or {}).get("totalTokenCount")
		if not usage:
			usage = estimate_tokens(full_prompt + text)

		return LLMResponse(content=text, tokens_used=usage, model=model, provider=self.name)


class MistralProvider(Provider):
	"""Mistral chat completions."""

	name = "mistral"

	async def complete(self, session, model, prompt, system_prompt, temperature, max_tokens):
		api_key = os.getenv("MISTRAL_API_KEY")
		if not api_key:
			raise LLMError("MISTRAL_API_KEY not configured")

		data = await self._post(
			session,
			f"{MISTRAL_BASE_URL}/chat/completions",
			{
				"model": model,
				"messages": _chat_messages(prompt, system_prompt),
				"temperature": temperature,
				"max_tokens": max_tokens,
			},
			{"Authorization": f"Bearer {api_key}"},
		)

		try:
			content = data["choices"][0]["message"].get("content")
		except (KeyError, IndexError) as e:
			raise LLMError(f"mistral returned no choices: {e}") from e

		return LLMResponse(
			content=content if isinstance(content, str) else "",
			tokens_used=(data.get("usage") or {}).get("total_tokens", 0),
			model=model,
			provider=self.name,
		)


PROVIDERS: dict[str, type[Provider]] = {
	"openai": OpenAIProvider,
	"gemini": GeminiProvider,
	"mistral": MistralProvider,
}
