"""
LLM Router - Dispatches generation to the provider named by a ModelSpec.

Every agent role (planner, executor, checker, summarizer) carries its
own ModelSpec, so roles can be pointed at different providers.
"""

import logging
from typing import Optional

import aiohttp

from ..errors import LLMError
from ..plans.models import ModelSpec
from .base import LLMResponse
from .providers import PROVIDERS, Provider

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT = 120  # seconds


class LLMRouter:
	"""
	Routes generate() calls to HTTP providers.

	Usage:
		router = LLMRouter()
		response = await router.generate(spec, "Summarize this...")
		await router.close()
	"""

	def __init__(
		self,
		providers: Optional[dict[str, Provider]] = None,
		timeout: int = DEFAULT_TIMEOUT,
	):
		self.providers = providers or {name: cls() for name, cls in PROVIDERS.items()}
		self.timeout = timeout
		self._session: Optional[aiohttp.ClientSession] = None

	async def _get_session(self) -> aiohttp.ClientSession:
		if self._session is None or self._session.closed:
			self._session = aiohttp.ClientSession(
				timeout=aiohttp.ClientTimeout(total=self.timeout),
			)
		return self._session

	async def generate(
		self,
		spec: ModelSpec,
		prompt: str,
		system_prompt: str = "",
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> LLMResponse:
		"""
		Generate text with the provider and model in `spec`.

		Args:
			spec: Provider/model for the calling role
			prompt: User prompt
			system_prompt: Optional system instructions
			temperature: Overrides spec.temperature
			max_tokens: Overrides spec.max_tokens

		Returns:
			LLMResponse with content and tokens used

		Raises:
			LLMError: Unknown provider or failed request
		"""
		provider = self.providers.get(spec.provider)
		if provider is None:
			raise LLMError(f"Unknown LLM provider: {spec.provider}")

		session = await self._get_session()
		response = await provider.complete(
			session,
			spec.model,
			prompt,
			system_prompt,
			spec.temperature if temperature is None else temperature,
			max_tokens or spec.max_tokens or DEFAULT_MAX_TOKENS,
		)

		logger.debug(f"{spec.provider}/{spec.model} used {response.tokens_used} tokens")
		return response

	async def close(self):
		"""Close the shared HTTP session."""
		if self._session and not self._session.closed:
			await self._session.close()
		self._session = None
