"""
Response repair - one bounded LLM-assisted retry around the pure parser.

The parser in ..schemas never calls a model. This wrapper asks the model
to correct its own output once, then parses again.
"""

import logging
from typing import Optional

from ..llm.base import LLMClient
from ..plans.models import ModelSpec
from ..schemas import ParseFailure, ParseResult, ResponseSchema, parse_response

logger = logging.getLogger(__name__)

MAX_REPAIR_ATTEMPTS = 1

REPAIR_SYSTEM_PROMPT = "You are a JSON repair assistant. Output only valid JSON, no explanations."


def build_repair_prompt(content: str, error: str, schema: ResponseSchema, context: str = "") -> str:
	"""Ask for corrected JSON given the parse error and the expected schema."""
	parts = [
		"Fix this JSON response.",
		"",
		f"Error: {error}",
		"",
		"Original Response:",
		content,
		"",
		"Expected Schema:",
		schema.describe(),
	]
	if context:
		parts.extend(["", f"Context: {context}"])
	parts.extend(["", "Output ONLY valid corrected JSON matching the schema."])
	return "\n".join(parts)


async def parse_with_repair(
	content: str,
	schema: ResponseSchema,
	llm: Optional[LLMClient] = None,
	repair_spec: Optional[ModelSpec] = None,
	max_retries: int = MAX_REPAIR_ATTEMPTS,
	context: str = "",
) -> ParseResult:
	"""
	Parse a response, asking the model to repair it on failure.

	Args:
		content: Raw model output
		schema: Expected response schema
		llm: Client used for the repair call. No repair without one.
		repair_spec: Model to repair with, usually the calling role's
		max_retries: Repair attempts, capped at MAX_REPAIR_ATTEMPTS
		context: Short hint included in the repair prompt

	Returns:
		ParseSuccess, or ParseFailure with the last error and the original content
	"""
	retries = min(max(max_retries, 0), MAX_REPAIR_ATTEMPTS)
	if llm is None or repair_spec is None:
		retries = 0

	current = content
	result = parse_response(current, schema)

	for attempt in range(retries):
		if result.success:
			break

		logger.info(f"Repairing {schema.name} response (attempt {attempt + 1}): {result.error}")
		try:
			response = await llm.generate(
				repair_spec,
				build_repair_prompt(current, result.error, schema, context),
				system_prompt=REPAIR_SYSTEM_PROMPT,
				temperature=0.1,
			)
			current = response.content
		except Exception as e:
			# Keep the original text; the reparse below reports its error
			logger.error(f"Repair call failed for {schema.name}: {e}")

		result = parse_response(current, schema)

	if not result.success:
		return ParseFailure(
			error=result.error,
			raw_content=content,
			validation_errors=result.validation_errors,
		)

	return result
