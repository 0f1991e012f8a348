"""
Structured output schemas for model responses.

Defines the response shapes requested from the planner and checker
roles, and a pure parser that extracts, decodes and validates them.
The parser never calls a model. Repair lives in orchestrator.repair.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .plans.models import TaskType

logger = logging.getLogger(__name__)


class PlannerTaskSpec(BaseModel):
	"""One task as proposed by the planner."""
	id: int = Field(ge=1)
	type: TaskType
	target: str = Field(min_length=1)
	description: str = Field(min_length=1)
	priority: int = Field(default=1, ge=1, le=10)
	dependencies: list[int] = Field(default_factory=list)


class PlannerResponse(BaseModel):
	"""Planner output: a titled task breakdown."""
	title: str = Field(min_length=1, max_length=200)
	tasks: list[PlannerTaskSpec] = Field(min_length=1, max_length=100)
	context: dict[str, Any] = Field(default_factory=dict)


class CheckerResponse(BaseModel):
	"""Checker output: a confidence score with optional notes."""
	confidence: float = Field(ge=0, le=100)
	notes: str = ""

	@field_validator("notes", mode="before")
	@classmethod
	def _null_notes(cls, value: Optional[str]) -> str:
		# Models often send "notes": null when they have nothing to add
		return "" if value is None else value


@dataclass
class ResponseSchema:
	"""A named schema for structured model output."""

	name: str
	description: str
	model: type[BaseModel]

	@property
	def json_schema(self) -> dict[str, Any]:
		return self.model.model_json_schema()

	def describe(self) -> str:
		"""Schema as indented JSON, for prompts."""
		return json.dumps(self.json_schema, indent=2)


@dataclass
class ParseSuccess:
	"""Validated model output."""
	data: Any
	success: bool = True


@dataclass
class ParseFailure:
	"""Output that could not be extracted, decoded or validated."""
	error: str
	raw_content: str
	validation_errors: list[str] = field(default_factory=list)
	success: bool = False


ParseResult = Union[ParseSuccess, ParseFailure]


_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BARE_JSON_RE = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def extract_json(content: str) -> Optional[str]:
	"""
	Pull a JSON document out of free text.

	Prefers a fenced code block, then the widest {...} or [...] span.
	"""
	match = _CODE_BLOCK_RE.search(content)
	if match:
		return match.group(1).strip()

	match = _BARE_JSON_RE.search(content)
	if match:
		return match.group(1)

	return None


def parse_response(content: str, schema: ResponseSchema) -> ParseResult:
	"""
	Extract, decode and validate a response against a schema.

	Compatible types are coerced (e.g. "85" for a number).

	Returns:
		ParseSuccess with the validated model, or ParseFailure with the error
	"""
	extracted = extract_json(content)
	if extracted is None:
		return ParseFailure(error="No JSON found in response", raw_content=content)

	try:
		parsed = json.loads(extracted)
	except json.JSONDecodeError as e:
		return ParseFailure(error=f"JSON parse error: {e}", raw_content=content)

	try:
		data = schema.model.model_validate(parsed)
	except ValidationError as e:
		details = [
			f"/{'/'.join(str(p) for p in err['loc'])} {err['msg']}"
			for err in e.errors()
		]
		return ParseFailure(
			error=f"Schema validation failed: {'; '.join(details)}",
			raw_content=content,
			validation_errors=details,
		)

	return ParseSuccess(data=data)


# Predefined schemas

PLANNER_SCHEMA = ResponseSchema(
	name="planner",
	description="Task breakdown for an autonomous plan",
	model=PlannerResponse,
)

CHECKER_SCHEMA = ResponseSchema(
	name="checker",
	description="Quality evaluation of a task result",
	model=CheckerResponse,
)

SCHEMAS = {
	"planner": PLANNER_SCHEMA,
	"checker": CHECKER_SCHEMA,
}


def get_schema(name: str) -> Optional[ResponseSchema]:
	"""Get a predefined schema by name."""
	return SCHEMAS.get(name)
