"""Tests for plan models."""

import pytest
from pydantic import ValidationError

from autonomous_agent.plans.models import (
	DEFAULT_MODEL_CONFIG,
	BudgetLimits,
	BudgetUsage,
	PlanStatus,
	TaskStatus,
)

from tests.helpers import make_plan, make_task


def test_plan_status_terminal():
	assert not PlanStatus.ACTIVE.is_terminal
	assert all(s.is_terminal for s in PlanStatus if s != PlanStatus.ACTIVE)


def test_get_stats():
	plan = make_plan(tasks=[
		make_task(1, status=TaskStatus.DONE, confidence_score=90.0),
		make_task(2, status=TaskStatus.NEEDS_REVIEW, confidence_score=60.0),
		make_task(3, status=TaskStatus.SKIPPED),
		make_task(4),
	])
	plan.budget_used = BudgetUsage(llm_calls=6, tokens_used=300, web_searches=1)

	stats = plan.get_stats()

	assert stats.total_tasks == 4
	assert stats.completed_tasks == 1
	assert stats.needs_review_tasks == 1
	assert stats.skipped_tasks == 1
	assert stats.pending_tasks == 1
	assert stats.average_confidence == 75.0
	assert stats.progress_percent == 75.0
	assert stats.total_llm_calls == 6


def test_all_tasks_terminal_includes_failed():
	plan = make_plan(tasks=[make_task(1, status=TaskStatus.FAILED), make_task(2, status=TaskStatus.DONE)])
	assert plan.all_tasks_terminal()
	plan.tasks.append(make_task(3, status=TaskStatus.RUNNING))
	assert not plan.all_tasks_terminal()


def test_usage_addition():
	total = BudgetUsage(llm_calls=1, tokens_used=10) + BudgetUsage(llm_calls=2, web_searches=1)
	assert total == BudgetUsage(llm_calls=3, tokens_used=10, web_searches=1)


def test_budget_limits_must_be_positive():
	with pytest.raises(ValidationError):
		BudgetLimits(max_llm_calls=0)


def test_model_config_for_role():
	assert DEFAULT_MODEL_CONFIG.for_role("checker").model == "gpt-4o-mini"
	with pytest.raises(ValueError):
		DEFAULT_MODEL_CONFIG.for_role("critic")


def test_plans_do_not_share_model_config():
	first, second = make_plan(), make_plan()
	first.models.executor.model = "changed"
	assert second.models.executor.model == DEFAULT_MODEL_CONFIG.executor.model


def test_to_markdown():
	plan = make_plan(tasks=[
		make_task(1, status=TaskStatus.DONE, confidence_score=88.0),
		make_task(2, (1,), status=TaskStatus.NEEDS_REVIEW, review_notes="check numbers"),
	], summary="Done well", id="plan_md")

	md = plan.to_markdown()

	assert md.startswith("# Vendor comparison")
	assert "- [x] 1. [analyze] Do step 1" in md
	assert "- [?] 2. [analyze] Do step 2 (after 1)" in md
	assert "confidence: 88%" in md
	assert "review: check numbers" in md
	assert "## Summary\nDone well" in md
