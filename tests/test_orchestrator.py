"""Tests for the plan/execute/check/summarize loop."""

import pytest

from autonomous_agent.errors import LLMError, PlanTerminalError
from autonomous_agent.orchestrator.events import OrchestratorCallbacks
from autonomous_agent.orchestrator.runner import Orchestrator
from autonomous_agent.plans.models import PlanStatus, TaskStatus, TaskType

from tests.helpers import (
	CallbackRecorder,
	FakeLLM,
	checker_json,
	make_config,
	make_plan,
	make_task,
	planner_json,
)

THREE_TASKS = [
	{"id": 1, "type": "analyze", "target": "proposal A", "description": "Read proposal A"},
	{"id": 2, "type": "compare", "target": "proposals", "description": "Compare A and B", "dependencies": [1]},
	{"id": 3, "type": "summarize", "target": "recommendation", "description": "Recommend", "dependencies": [2]},
]


def _orchestrator(store, llm, tmp_path, callbacks=None, **config):
	return Orchestrator(store, llm, callbacks=callbacks, config=make_config(tmp_path, **config))


def _llm(**overrides):
	replies = dict(
		planner=planner_json(THREE_TASKS, title="Proposal review"),
		executor="task output",
		checker=checker_json(90),
		summarizer="Final summary",
	)
	replies.update(overrides)
	return FakeLLM(**replies)


class TestCreateAndExecute:
	@pytest.mark.asyncio
	async def test_full_run_completes(self, store, tmp_path):
		recorder = CallbackRecorder()
		orchestrator = _orchestrator(store, _llm(), tmp_path, recorder.callbacks())

		result = await orchestrator.create_and_execute("Review the proposals", "thread-1", "user-1")

		assert result.success
		assert result.summary == "Final summary"
		assert result.stats.completed_tasks == 3

		plan = await store.get_plan(result.plan_id)
		assert plan.status == PlanStatus.COMPLETED
		assert plan.summary == "Final summary"
		assert plan.title == "Proposal review"
		assert plan.original_request == "Review the proposals"
		# planner 1 + two checked tasks 2 each + summarize task 1 + final summary 1
		assert plan.budget_used.llm_calls == 7
		assert plan.budget_used.tokens_used == 70

		assert recorder.names() == [
			"plan_created",
			"task_started", "task_completed",
			"task_started", "task_completed",
			"task_started", "task_completed",
			"plan_completed",
		]
		started = [args[0].id for args in recorder.of("task_started")]
		assert started == [1, 2, 3]

	@pytest.mark.asyncio
	async def test_planning_failure_persists_nothing(self, store, tmp_path):
		recorder = CallbackRecorder()
		llm = _llm(planner="I would rather not", repair="still no")
		orchestrator = _orchestrator(store, llm, tmp_path, recorder.callbacks())

		result = await orchestrator.create_and_execute("Review", "thread-1", "user-1")

		assert not result.success
		assert result.plan_id == ""
		assert result.error.startswith("Failed to parse plan:")
		assert await store.list_plans() == []
		assert recorder.names() == ["error"]

	@pytest.mark.asyncio
	async def test_cyclic_plan_never_stored(self, store, tmp_path):
		cyclic = [
			{"id": 1, "type": "analyze", "target": "a", "description": "A"},
			{"id": 2, "type": "analyze", "target": "b", "description": "B", "dependencies": [1, 3]},
			{"id": 3, "type": "analyze", "target": "c", "description": "C", "dependencies": [2]},
		]
		orchestrator = _orchestrator(store, _llm(planner=planner_json(cyclic)), tmp_path)

		result = await orchestrator.create_and_execute("Review", "thread-1", "user-1")

		assert not result.success
		assert "Circular dependency detected: 2 → 3 → 2" in result.error
		assert await store.list_plans() == []


class TestExecutePlan:
	@pytest.mark.asyncio
	async def test_needs_review_does_not_stop_the_plan(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		llm = _llm(checker=[checker_json(60, "weak sources"), checker_json(95)])
		orchestrator = _orchestrator(store, llm, tmp_path)

		result = await orchestrator.execute_plan(plan_id)

		assert result.success
		plan = await store.get_plan(plan_id)
		assert plan.get_task(1).status == TaskStatus.NEEDS_REVIEW
		assert plan.get_task(2).status == TaskStatus.DONE
		assert plan.get_task(3).status == TaskStatus.DONE
		assert result.stats.needs_review_tasks == 1

	@pytest.mark.asyncio
	async def test_skipped_task_unblocks_dependents(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		llm = _llm(executor=[LLMError("provider down"), "fine now"])
		orchestrator = _orchestrator(store, llm, tmp_path)

		result = await orchestrator.execute_plan(plan_id)

		assert result.success
		plan = await store.get_plan(plan_id)
		assert plan.get_task(1).status == TaskStatus.SKIPPED
		assert plan.get_task(1).error == "provider down"
		assert plan.get_task(2).status == TaskStatus.DONE

	@pytest.mark.asyncio
	async def test_priority_orders_independent_tasks(self, store, tmp_path):
		tasks = [make_task(1, priority=5), make_task(2, priority=1), make_task(3, (1, 2))]
		plan_id = await store.create_plan(make_plan(tasks=tasks))
		recorder = CallbackRecorder()
		orchestrator = _orchestrator(store, _llm(), tmp_path, recorder.callbacks())

		await orchestrator.execute_plan(plan_id)

		assert [args[0].id for args in recorder.of("task_started")] == [2, 1, 3]

	@pytest.mark.asyncio
	async def test_budget_exhausted_before_first_task(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		await store.increment_budget_usage(plan_id, llm_calls=10)
		llm = _llm()
		recorder = CallbackRecorder()
		orchestrator = _orchestrator(store, llm, tmp_path, recorder.callbacks(), max_llm_calls=10)

		result = await orchestrator.execute_plan(plan_id)

		assert not result.success
		assert result.error == "Budget exceeded: LLM call limit exceeded (10)"
		assert result.budget_type == "llm_calls"
		assert llm.calls == []

		plan = await store.get_plan(plan_id)
		assert plan.status == PlanStatus.FAILED
		assert plan.error_message == result.error
		assert all(t.status == TaskStatus.PENDING for t in plan.tasks)
		assert [e.budget_type for e in (args[0] for args in recorder.of("budget_exceeded"))] == ["llm_calls"]
		assert recorder.of("error") == [(result.error,)]

	@pytest.mark.asyncio
	async def test_budget_exhausted_after_a_task(self, store, tmp_path):
		orchestrator = _orchestrator(store, _llm(), tmp_path, max_llm_calls=3)

		result = await orchestrator.create_and_execute("Review", "thread-1", "user-1")

		assert not result.success
		assert result.error == "Budget exceeded after task 1: LLM call limit exceeded (3)"
		plan = await store.get_plan(result.plan_id)
		assert plan.status == PlanStatus.FAILED
		assert plan.get_task(1).status == TaskStatus.DONE
		assert plan.get_task(2).status == TaskStatus.PENDING
		assert plan.budget_used.llm_calls == 3

	@pytest.mark.asyncio
	async def test_budget_warnings_are_forwarded(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan(tasks=[make_task(1)]))
		await store.increment_budget_usage(plan_id, llm_calls=5)
		recorder = CallbackRecorder()
		orchestrator = _orchestrator(store, _llm(), tmp_path, recorder.callbacks(), max_llm_calls=10)

		result = await orchestrator.execute_plan(plan_id)

		assert result.success
		warnings = [args[0] for args in recorder.of("budget_warning")]
		assert warnings
		assert warnings[0].level == "medium"
		assert warnings[0].budget_type == "llm_calls"

	@pytest.mark.asyncio
	async def test_stuck_plan_fails(self, store, tmp_path):
		tasks = [make_task(1, status=TaskStatus.FAILED), make_task(2, (1,))]
		plan_id = await store.create_plan(make_plan(tasks=tasks))
		llm = _llm()
		orchestrator = _orchestrator(store, llm, tmp_path)

		result = await orchestrator.execute_plan(plan_id)

		assert not result.success
		assert result.error.startswith("Plan stuck: All pending tasks have unmet dependencies")
		assert "Failed dependencies: 1" in result.error
		assert llm.calls == []
		assert (await store.get_plan(plan_id)).status == PlanStatus.FAILED

	@pytest.mark.asyncio
	async def test_summary_failure_fails_the_plan(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		orchestrator = _orchestrator(store, _llm(summarizer=LLMError("quota")), tmp_path)

		result = await orchestrator.execute_plan(plan_id)

		assert not result.success
		assert result.error == "Summary generation failed: quota"
		plan = await store.get_plan(plan_id)
		assert plan.status == PlanStatus.FAILED
		assert plan.summary is None
		assert all(t.status == TaskStatus.DONE for t in plan.tasks)

	@pytest.mark.asyncio
	async def test_empty_summary_fails_the_plan(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan(tasks=[make_task(1, task_type=TaskType.SUMMARIZE)]))
		orchestrator = _orchestrator(store, _llm(summarizer="   "), tmp_path)

		result = await orchestrator.execute_plan(plan_id)

		assert result.error == "Summary generation returned no content"

	@pytest.mark.asyncio
	async def test_plan_without_tasks_fails(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan(tasks=[]))
		result = await _orchestrator(store, _llm(), tmp_path).execute_plan(plan_id)

		assert result.error == "Plan has no tasks"
		assert (await store.get_plan(plan_id)).status == PlanStatus.FAILED

	@pytest.mark.asyncio
	async def test_iteration_cap(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		result = await _orchestrator(store, _llm(), tmp_path, max_iterations=1).execute_plan(plan_id)
		assert result.error == "Execution exceeded maximum iterations (1)"

	@pytest.mark.asyncio
	async def test_unknown_plan(self, store, tmp_path):
		result = await _orchestrator(store, _llm(), tmp_path).execute_plan("plan_missing")
		assert not result.success
		assert result.error == "Plan plan_missing not found"

	@pytest.mark.asyncio
	async def test_terminal_plan_is_not_rerun(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		await store.complete_plan(plan_id, "already done")
		llm = _llm()

		result = await _orchestrator(store, llm, tmp_path).execute_plan(plan_id)

		assert result.error == "Plan is already completed"
		assert llm.calls == []


class TestCancellation:
	@pytest.mark.asyncio
	async def test_cancel_between_tasks(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		holder = {}

		async def cancel_after_first(task, result):
			if task.id == 1:
				await holder["orchestrator"].cancel_plan(plan_id, "User changed their mind")

		callbacks = OrchestratorCallbacks(on_task_completed=cancel_after_first)
		orchestrator = _orchestrator(store, _llm(), tmp_path, callbacks)
		holder["orchestrator"] = orchestrator

		result = await orchestrator.execute_plan(plan_id)

		assert not result.success
		assert result.error == "Plan cancelled during execution"
		plan = await store.get_plan(plan_id)
		assert plan.status == PlanStatus.CANCELLED
		assert plan.error_message == "User changed their mind"
		assert plan.get_task(1).status == TaskStatus.DONE
		assert plan.get_task(2).status == TaskStatus.PENDING

	@pytest.mark.asyncio
	async def test_cancel_finished_plan_raises(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		await store.fail_plan(plan_id, "boom")

		with pytest.raises(PlanTerminalError):
			await _orchestrator(store, _llm(), tmp_path).cancel_plan(plan_id)


class TestRecovery:
	@pytest.mark.asyncio
	async def test_recover_then_resume(self, store, tmp_path):
		plan_id = await store.create_plan(make_plan())
		await store.transition_task_state(plan_id, 1, TaskStatus.RUNNING)
		orchestrator = _orchestrator(store, _llm(), tmp_path, recovery_grace_minutes=0)

		assert await orchestrator.recover() == 1

		result = await orchestrator.execute_plan(plan_id)
		assert result.success
		plan = await store.get_plan(plan_id)
		assert plan.get_task(1).status == TaskStatus.SKIPPED
		assert plan.get_task(1).error == "Task timeout during crash recovery"
		assert plan.get_task(3).status == TaskStatus.DONE
