"""
Checker - Independent quality gate for task results.

Key Principle: a result is approved only when the checker model reports
a confidence at or above the threshold. Parse failures and errors always
resolve to needs_review with confidence 0.

Summarize tasks are approved without a model call.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..llm.base import LLMClient, MeteredLLM
from ..plans.models import ModelSpec, Task, TaskType
from ..schemas import CHECKER_SCHEMA
from .repair import parse_with_repair

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 80

CHECKER_SYSTEM_PROMPT = (
	"You are a quality checker. Evaluate task results objectively and provide confidence scores."
)


class CheckStatus(str, Enum):
	"""Checker verdict."""
	APPROVED = "approved"
	NEEDS_REVIEW = "needs_review"


@dataclass
class CheckerResult:
	"""Verdict for one task result."""
	status: CheckStatus
	confidence_score: float
	notes: str = ""
	tokens_used: int = 0
	llm_calls: int = 0

	@property
	def approved(self) -> bool:
		return self.status == CheckStatus.APPROVED


class Checker:
	"""
	Scores task results with the checker model.

	Usage:
		checker = Checker(llm, spec, threshold=80)
		verdict = await checker.check(task, result_text)
	"""

	def __init__(
		self,
		llm: LLMClient,
		spec: ModelSpec,
		threshold: Optional[int] = None,
	):
		"""
		Initialize the checker.

		Args:
			llm: LLM client
			spec: Model for the checker role
			threshold: Approval threshold 0-100 (default from config)
		"""
		if threshold is None:
			from ..config import get_config
			threshold = get_config().confidence_threshold

		self.llm = llm
		self.spec = spec
		self.threshold = threshold

	async def check(self, task: Task, result: str) -> CheckerResult:
		"""
		Evaluate a task result.

		Returns:
			CheckerResult. Never approved unless confidence >= threshold.
		"""
		if task.type == TaskType.SUMMARIZE:
			return CheckerResult(
				status=CheckStatus.APPROVED,
				confidence_score=100,
				notes="Summary tasks auto-approved",
			)

		meter = MeteredLLM(self.llm)
		try:
			response = await meter.generate(
				self.spec,
				build_evaluation_prompt(task, result, self.threshold),
				system_prompt=CHECKER_SYSTEM_PROMPT,
				temperature=0.2,
			)

			parsed = await parse_with_repair(
				response.content,
				CHECKER_SCHEMA,
				llm=meter,
				repair_spec=self.spec,
				context="Checker response for quality evaluation",
			)

			if not parsed.success:
				logger.warning(f"Checker parse failed for task {task.id}: {parsed.error}")
				return self._review(meter, f"Parse failed, manual review needed: {parsed.error}")

			confidence = parsed.data.confidence
			notes = parsed.data.notes

			if confidence >= self.threshold:
				return CheckerResult(
					status=CheckStatus.APPROVED,
					confidence_score=confidence,
					notes=notes or "Meets quality threshold",
					tokens_used=meter.tokens_used,
					llm_calls=meter.llm_calls,
				)

			return CheckerResult(
				status=CheckStatus.NEEDS_REVIEW,
				confidence_score=confidence,
				notes=notes or f"Confidence {confidence:g}% below threshold {self.threshold}%",
				tokens_used=meter.tokens_used,
				llm_calls=meter.llm_calls,
			)

		except Exception as e:
			logger.error(f"Checker error on task {task.id}: {e}")
			return self._review(meter, f"Checker error: {e}")

	async def check_batch(self, items: list[tuple[Task, str]]) -> list[CheckerResult]:
		"""Check several results sequentially. Each item fails closed on its own."""
		results = []
		for task, result in items:
			try:
				results.append(await self.check(task, result))
			except Exception as e:
				results.append(CheckerResult(
					status=CheckStatus.NEEDS_REVIEW,
					confidence_score=0,
					notes=f"Batch check error: {e}",
				))
		return results

	@staticmethod
	def _review(meter: MeteredLLM, notes: str) -> CheckerResult:
		return CheckerResult(
			status=CheckStatus.NEEDS_REVIEW,
			confidence_score=0,
			notes=notes,
			tokens_used=meter.tokens_used,
			llm_calls=meter.llm_calls,
		)


def build_evaluation_prompt(task: Task, result: str, threshold: int) -> str:
	"""Build the evaluation prompt for the checker model."""
	return f"""Evaluate this task result quality on a scale of 0-100% confidence.

**Task Details:**
- Type: {task.type.value}
- Target: {task.target}
- Description: {task.description}

**Task Result:**
{result or "(No result provided)"}

**Evaluation Criteria:**
- Completeness: Does the result fully address the task?
- Accuracy: Is the information correct and reliable?
- Relevance: Is the result relevant to the task target?
- Quality: Is the result well-structured and clear?

**Confidence Threshold:** {threshold}%
- >={threshold}%: Task will be auto-approved
- <{threshold}%: Task will be flagged for manual review

Respond with JSON only:
{{
  "confidence": 85,
  "notes": "Brief explanation of the confidence score"
}}"""
