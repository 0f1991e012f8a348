"""Tests for the LLM router, providers and usage metering."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from autonomous_agent.errors import LLMError
from autonomous_agent.llm import LLMResponse, LLMRouter, MeteredLLM, estimate_tokens
from autonomous_agent.llm.providers import GeminiProvider, MistralProvider, OpenAIProvider
from autonomous_agent.plans.models import ModelSpec

from tests.helpers import TEST_SPEC, FakeLLM


def _session(data=None, status=200, body=""):
	"""A mock aiohttp session whose post() yields one canned response."""
	response = MagicMock()
	response.status = status
	response.json = AsyncMock(return_value=data or {})
	response.text = AsyncMock(return_value=body)

	session = MagicMock()
	session.post.return_value.__aenter__.return_value = response
	return session


class StubProvider:
	def __init__(self):
		self.calls = []

	async def complete(self, session, model, prompt, system_prompt, temperature, max_tokens):
		self.calls.append((model, prompt, system_prompt, temperature, max_tokens))
		return LLMResponse(content="stub", tokens_used=5, model=model, provider="openai")


def test_estimate_tokens():
	assert estimate_tokens("") == 0
	assert estimate_tokens("abcd") == 1
	assert estimate_tokens("abcde") == 2


class TestMeteredLLM:
	@pytest.mark.asyncio
	async def test_counts_completed_calls(self):
		meter = MeteredLLM(FakeLLM(tokens_per_call=12))
		await meter.generate(TEST_SPEC, "one")
		await meter.generate(TEST_SPEC, "two")
		assert meter.llm_calls == 2
		assert meter.tokens_used == 24

	@pytest.mark.asyncio
	async def test_failed_call_not_counted(self):
		meter = MeteredLLM(FakeLLM(unknown=LLMError("down")))
		with pytest.raises(LLMError):
			await meter.generate(TEST_SPEC, "one")
		assert meter.llm_calls == 0


class TestRouter:
	@pytest.mark.asyncio
	async def test_dispatches_by_provider_with_overrides(self):
		stub = StubProvider()
		router = LLMRouter(providers={"openai": stub})
		spec = ModelSpec(provider="openai", model="gpt-4o", temperature=0.4)

		try:
			response = await router.generate(spec, "hello", system_prompt="sys", temperature=0.1)
		finally:
			await router.close()

		assert response.content == "stub"
		assert stub.calls == [("gpt-4o", "hello", "sys", 0.1, 4096)]

	@pytest.mark.asyncio
	async def test_spec_defaults(self):
		stub = StubProvider()
		router = LLMRouter(providers={"mistral": stub})
		spec = ModelSpec(provider="mistral", model="mistral-large-latest", temperature=0.3, max_tokens=900)

		try:
			await router.generate(spec, "hello")
		finally:
			await router.close()

		assert stub.calls[0][3:] == (0.3, 900)

	@pytest.mark.asyncio
	async def test_unknown_provider(self):
		router = LLMRouter(providers={"openai": StubProvider()})
		with pytest.raises(LLMError, match="Unknown LLM provider: gemini"):
			await router.generate(ModelSpec(provider="gemini", model="x"), "hello")


class TestProviders:
	@pytest.mark.asyncio
	async def test_openai_parses_choices(self):
		session = _session({
			"choices": [{"message": {"content": "Hi there"}}],
			"usage": {"total_tokens": 33},
		})
		with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test", "OPENAI_BASE_URL": "https://gateway/v1/"}):
			response = await OpenAIProvider().complete(session, "gpt-4o", "hello", "sys", 0.2, 100)

		assert response.content == "Hi there"
		assert response.tokens_used == 33
		url = session.post.call_args.args[0]
		payload = session.post.call_args.kwargs["json"]
		assert url == "https://gateway/v1/chat/completions"
		assert payload["messages"][0] == {"role": "system", "content": "sys"}
		assert session.post.call_args.kwargs["headers"] == {"Authorization": "Bearer sk-test"}

	@pytest.mark.asyncio
	async def test_missing_key(self):
		with patch.dict(os.environ, {}, clear=True):
			with pytest.raises(LLMError, match="OPENAI_API_KEY"):
				await OpenAIProvider().complete(_session(), "gpt-4o", "hello", "", 0.2, 100)

	@pytest.mark.asyncio
	async def test_http_error(self):
		session = _session(status=429, body="slow down")
		with patch.dict(os.environ, {"MISTRAL_API_KEY": "k"}):
			with pytest.raises(LLMError, match=r"mistral request failed \(429\): slow down"):
				await MistralProvider().complete(session, "mistral-large-latest", "hello", "", 0.2, 100)

	@pytest.mark.asyncio
	async def test_client_error(self):
		session = MagicMock()
		session.post.side_effect = aiohttp.ClientError("connection refused")
		with patch.dict(os.environ, {"OPENAI_API_KEY": "k"}):
			with pytest.raises(LLMError, match="connection refused"):
				await OpenAIProvider().complete(session, "gpt-4o", "hello", "", 0.2, 100)

	@pytest.mark.asyncio
	async def test_gemini_estimates_missing_usage(self):
		session = _session({"candidates": [{"content": {"parts": [{"text": "abcd"}, {"text": "efgh"}]}}]})
		with patch.dict(os.environ, {"GEMINI_API_KEY": "g"}):
			response = await GeminiProvider().complete(session, "gemini-2.0-flash-exp", "1234", "", 0.3, 100)

		assert response.content == "abcdefgh"
		assert response.tokens_used == 3
		assert session.post.call_args.kwargs["headers"] == {"x-goog-api-key": "g"}

	@pytest.mark.asyncio
	async def test_mistral_no_choices(self):
		with patch.dict(os.environ, {"MISTRAL_API_KEY": "k"}):
			with pytest.raises(LLMError, match="no choices"):
				await MistralProvider().complete(_session({"choices": []}), "m", "hello", "", 0.2, 100)
