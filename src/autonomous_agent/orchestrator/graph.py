"""
Dependency Graph - Pure checks over a plan's task list.

Functions:
- validate_dependency_graph: duplicate ids, dangling refs, self-deps, cycles, roots
- topological_sort: Kahn's algorithm, None when cyclic
- find_ready_tasks: pending tasks whose dependencies are all settled
- detect_stuck_plan: runtime deadlock analysis
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional

from ..plans.models import SETTLED_STATUSES, Task, TaskStatus

logger = logging.getLogger(__name__)

# More leaves than this earns a consolidation warning
MAX_LEAF_TASKS = 3


@dataclass
class ValidationResult:
	"""Outcome of validating a task graph."""
	valid: bool
	errors: list[str] = field(default_factory=list)
	warnings: list[str] = field(default_factory=list)


@dataclass
class StuckPlanResult:
	"""Outcome of stuck-plan detection."""
	is_stuck: bool
	reason: Optional[str] = None
	stuck_task_ids: list[int] = field(default_factory=list)
	suggestions: list[str] = field(default_factory=list)


def find_cycles(tasks: list[Task]) -> list[list[int]]:
	"""
	Find dependency cycles with a depth-first search.

	Returns:
		Each cycle as the id path that closes on itself, e.g. [3, 4, 3]
	"""
	task_map = {t.id: t for t in tasks}
	visited: set[int] = set()
	on_stack: set[int] = set()
	cycles: list[list[int]] = []

	def dfs(task_id: int, path: list[int]) -> None:
		visited.add(task_id)
		on_stack.add(task_id)
		path.append(task_id)

		task = task_map.get(task_id)
		if task is not None:
			for dep_id in task.dependencies:
				if dep_id not in task_map:
					continue
				if dep_id not in visited:
					dfs(dep_id, list(path))
				elif dep_id in on_stack:
					start = path.index(dep_id)
					cycles.append(path[start:] + [dep_id])

		on_stack.discard(task_id)

	for task in tasks:
		if task.id not in visited:
			dfs(task.id, [])

	return cycles


def format_cycle(cycle: list[int]) -> str:
	return " → ".join(str(task_id) for task_id in cycle)


def validate_dependency_graph(tasks: list[Task]) -> ValidationResult:
	"""
	Validate the dependency graph of a task list.

	Errors: duplicate ids, references to missing tasks, self-dependencies,
	cycles, and a non-empty graph with no root. Many leaves is only a warning.
	"""
	errors: list[str] = []
	warnings: list[str] = []
	task_ids = {t.id for t in tasks}

	for task_id, count in Counter(t.id for t in tasks).items():
		if count > 1:
			errors.append(f"Duplicate task ID: {task_id} (appears {count} times)")

	for task in tasks:
		for dep_id in task.dependencies:
			if dep_id not in task_ids:
				errors.append(f"Task {task.id} depends on non-existent task {dep_id}")
		if task.id in task.dependencies:
			errors.append(f"Task {task.id} depends on itself")

	for cycle in find_cycles(tasks):
		# A self-dependency is already reported above
		if len(cycle) > 2:
			errors.append(f"Circular dependency detected: {format_cycle(cycle)}")

	if tasks and not any(not t.dependencies for t in tasks):
		errors.append("No root tasks found - all tasks depend on other tasks, nothing can start")

	depended_on = {dep_id for t in tasks for dep_id in t.dependencies}
	leaves = [t for t in tasks if t.id not in depended_on]
	if len(leaves) > MAX_LEAF_TASKS:
		warnings.append(f"Many leaf tasks ({len(leaves)}) - consider consolidating")

	return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def topological_sort(tasks: list[Task]) -> Optional[list[Task]]:
	"""
	Order tasks so every dependency comes before its dependents.

	Returns:
		Ordered tasks, or None if the graph has a cycle
	"""
	if find_cycles(tasks):
		return None

	task_ids = {t.id for t in tasks}
	in_degree = {t.id: sum(1 for d in t.dependencies if d in task_ids) for t in tasks}
	dependents: dict[int, list[Task]] = {t.id: [] for t in tasks}
	for task in tasks:
		for dep_id in task.dependencies:
			if dep_id in dependents:
				dependents[dep_id].append(task)

	queue = deque(t for t in tasks if in_degree[t.id] == 0)
	ordered: list[Task] = []

	while queue:
		task = queue.popleft()
		ordered.append(task)
		for dependent in dependents[task.id]:
			in_degree[dependent.id] -= 1
			if in_degree[dependent.id] == 0:
				queue.append(dependent)

	if len(ordered) != len(tasks):
		return None

	return ordered


def _unmet_dependencies(task: Task, by_id: dict[int, Task]) -> list[int]:
	unmet = []
	for dep_id in task.dependencies:
		dep = by_id.get(dep_id)
		if dep is None or dep.status not in SETTLED_STATUSES:
			unmet.append(dep_id)
	return unmet


def find_ready_tasks(tasks: list[Task]) -> list[Task]:
	"""Pending tasks whose every dependency is settled, in array order."""
	by_id = {t.id: t for t in tasks}
	return [
		t for t in tasks
		if t.status == TaskStatus.PENDING and not _unmet_dependencies(t, by_id)
	]


def select_next_task(tasks: list[Task]) -> Optional[Task]:
	"""
	Pick the next task to run.

	Lower priority numbers run first. Array order breaks ties, so a plan
	with uniform priorities runs in array order.
	"""
	ready = find_ready_tasks(tasks)
	if not ready:
		return None
	# min() keeps the first of equal keys
	return min(ready, key=lambda t: t.priority)


def detect_stuck_plan(tasks: list[Task]) -> StuckPlanResult:
	"""
	Detect a plan that can make no further progress.

	Stuck means pending tasks exist, none is running, and none is ready.
	"""
	pending = [t for t in tasks if t.status == TaskStatus.PENDING]
	running = [t for t in tasks if t.status == TaskStatus.RUNNING]

	if not pending or running or find_ready_tasks(tasks):
		return StuckPlanResult(is_stuck=False)

	by_id = {t.id: t for t in tasks}
	suggestions: list[str] = []

	blocked = {t.id: _unmet_dependencies(t, by_id) for t in pending}
	failed_deps = sorted({
		dep_id
		for unmet in blocked.values()
		for dep_id in unmet
		if dep_id in by_id and by_id[dep_id].status == TaskStatus.FAILED
	})
	missing_deps = sorted({
		dep_id for unmet in blocked.values() for dep_id in unmet if dep_id not in by_id
	})

	if any(blocked.values()):
		suggestions.append("Some dependencies failed or are stuck")
		suggestions.append("Consider marking failed dependencies as skipped to unblock")
	if failed_deps:
		suggestions.append(f"Failed dependencies: {', '.join(str(d) for d in failed_deps)}")
	if missing_deps:
		suggestions.append(f"Missing dependencies: {', '.join(str(d) for d in missing_deps)}")

	# Cycles should have been rejected at creation; check again anyway
	cycles = find_cycles(tasks)
	if cycles:
		suggestions.append(
			"Circular dependencies detected - plan cannot complete: "
			+ "; ".join(format_cycle(c) for c in cycles)
		)

	logger.warning(f"Plan stuck with {len(pending)} pending tasks: {blocked}")

	return StuckPlanResult(
		is_stuck=True,
		reason="All pending tasks have unmet dependencies",
		stuck_task_ids=[t.id for t in pending],
		suggestions=suggestions,
	)
