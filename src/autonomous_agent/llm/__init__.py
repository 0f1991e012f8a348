"""LLM collaborator: provider router and shared response types."""

from .base import LLMClient, LLMResponse, MeteredLLM, estimate_tokens
from .router import LLMRouter

__all__ = [
	"LLMClient",
	"LLMResponse",
	"LLMRouter",
	"MeteredLLM",
	"estimate_tokens",
]
