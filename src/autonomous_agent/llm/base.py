"""LLM collaborator interface shared by every agent role."""

import math
from dataclasses import dataclass
from typing import Optional, Protocol

from ..plans.models import ModelSpec


@dataclass
class LLMResponse:
	"""Text generated by a model plus its token cost."""
	content: str
	tokens_used: int = 0
	model: str = ""
	provider: str = ""


class LLMClient(Protocol):
	"""Anything that can generate text for a model spec."""

	async def generate(
		self,
		spec: ModelSpec,
		prompt: str,
		system_prompt: str = "",
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> LLMResponse:
		...


def estimate_tokens(text: str) -> int:
	"""Rough token estimate, about four characters per token."""
	return math.ceil(len(text) / 4)


class MeteredLLM:
	"""
	Wraps an LLM client and counts every completed call.

	The counts survive exceptions and cancellation of the caller, so
	partial usage of a failed task can still be charged.
	"""

	def __init__(self, llm: LLMClient):
		self.llm = llm
		self.llm_calls = 0
		self.tokens_used = 0

	async def generate(
		self,
		spec: ModelSpec,
		prompt: str,
		system_prompt: str = "",
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> LLMResponse:
		response = await self.llm.generate(
			spec,
			prompt,
			system_prompt=system_prompt,
			temperature=temperature,
			max_tokens=max_tokens,
		)
		self.llm_calls += 1
		self.tokens_used += response.tokens_used
		return response
