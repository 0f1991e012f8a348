"""
Summarizer - Consolidates a finished plan's task results into a summary.

A plan cannot complete without a summary, so any failure here raises
SummaryError instead of falling back to a canned text.
"""

import logging
from dataclasses import dataclass

from ..errors import SummaryError
from ..llm.base import LLMClient
from ..plans.models import TaskPlan, TaskStatus

logger = logging.getLogger(__name__)

REVIEW_RESULT_CHARS = 200

SUMMARIZER_SYSTEM_PROMPT = """You are a summary generation agent. You create clear, comprehensive summaries of completed task plans.

Key principles:
- Synthesize information from multiple tasks
- Highlight key accomplishments and findings
- Note any issues or tasks needing review
- Provide actionable insights
- Write in a professional, clear style

Output your summary in markdown format."""

_STATUS_MARKS = {
	TaskStatus.DONE: "✓",
	TaskStatus.SKIPPED: "⊘",
	TaskStatus.NEEDS_REVIEW: "⚠",
}


@dataclass
class SummaryResult:
	summary: str
	tokens_used: int = 0


class Summarizer:
	"""Writes the final plan summary with the summarizer model."""

	def __init__(self, llm: LLMClient):
		self.llm = llm

	async def summarize(self, plan: TaskPlan) -> SummaryResult:
		"""
		Summarize a plan whose tasks are all terminal.

		Raises:
			SummaryError: If the model call fails or returns nothing
		"""
		try:
			response = await self.llm.generate(
				plan.models.summarizer,
				build_summary_prompt(plan),
				system_prompt=SUMMARIZER_SYSTEM_PROMPT,
				temperature=0.5,
			)
		except Exception as e:
			raise SummaryError(f"Summary generation failed: {e}") from e

		summary = response.content.strip()
		if not summary:
			raise SummaryError("Summary generation returned no content")

		logger.info(f"Summarized plan {plan.id} ({response.tokens_used} tokens)")
		return SummaryResult(summary=summary, tokens_used=response.tokens_used)


def build_summary_prompt(plan: TaskPlan) -> str:
	"""Build the summary prompt from task outcomes and plan statistics."""
	lines = [
		"Generate a comprehensive summary of this completed autonomous plan.",
		"",
		f"**Plan:** {plan.title}",
		f"**Original Request:** {plan.original_request}",
		"",
		"**Task Results:**",
	]

	for task in plan.tasks:
		lines.append("")
		lines.append(f"{_STATUS_MARKS.get(task.status, '✗')} Task {task.id}: {task.description}")

		if task.status == TaskStatus.DONE and task.result:
			lines.append(f"  Result: {task.result}")
			if task.confidence_score is not None:
				lines.append(f"  Confidence: {task.confidence_score:g}%")
		elif task.status == TaskStatus.SKIPPED and task.error:
			lines.append(f"  Skipped: {task.error}")
		elif task.status == TaskStatus.NEEDS_REVIEW:
			lines.append(f"  Needs Review: {task.review_notes or 'Low confidence'}")
			if task.result:
				lines.append(f"  Result: {task.result[:REVIEW_RESULT_CHARS]}...")
		elif task.status == TaskStatus.FAILED and task.error:
			lines.append(f"  Failed: {task.error}")

	stats = plan.get_stats()
	lines.append(f"""
**Statistics:**
- Total Tasks: {stats.total_tasks}
- Completed: {stats.completed_tasks}
- Failed/Skipped: {stats.failed_tasks + stats.skipped_tasks}
- Needs Review: {stats.needs_review_tasks}
- Average Confidence: {stats.average_confidence:.1f}%

**Instructions:**
1. Summarize what was accomplished
2. Highlight key findings or results
3. Note any tasks that need review or failed
4. Provide actionable next steps if applicable
5. Keep the summary concise (2-4 paragraphs)

Write in a clear, professional tone.""")

	return "\n".join(lines)
