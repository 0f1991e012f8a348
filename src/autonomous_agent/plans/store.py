"""
Plan Store - SQLite-backed durable plan/task state.

Features:
- Create/get/delete plans
- Forward-only task transitions with append-only state history
- Atomic per-counter budget increments
- Terminal-once plan status setters
- Crash recovery sweep and retention cleanup
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from ..errors import InvalidTransitionError, PlanNotFoundError, PlanTerminalError
from .models import (
	ALLOWED_TRANSITIONS,
	BudgetLimits,
	BudgetUsage,
	ModelConfig,
	PlanStatus,
	StateHistoryEntry,
	Task,
	TaskPlan,
	TaskStatus,
	TERMINAL_TASK_STATUSES,
)

logger = logging.getLogger(__name__)

RECOVERY_TIMEOUT_ERROR = "Task timeout during crash recovery"

# Fields a transition may copy onto the task
_TRANSITION_FIELDS = ("result", "error", "confidence_score", "review_notes", "tokens_used", "llm_calls")


class PlanStore:
	"""
	SQLite-backed plan storage.

	Usage:
		store = PlanStore("data/plans.db")
		await store.init()

		plan_id = await store.create_plan(plan)
		await store.transition_task_state(plan_id, 1, TaskStatus.RUNNING)
		await store.increment_budget_usage(plan_id, llm_calls=1, tokens_used=420)
		await store.set_plan_status(plan_id, PlanStatus.COMPLETED, summary="...")
	"""

	def __init__(self, db_path: str):
		"""Initialize the plan store."""
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self._db: Optional[aiosqlite.Connection] = None
		# Serializes read-modify-write of tasks_json on the shared connection
		self._tasks_lock = asyncio.Lock()

	async def init(self):
		"""Initialize the database schema."""
		self._db = await aiosqlite.connect(str(self.db_path))
		self._db.row_factory = aiosqlite.Row

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS task_plans (
				id TEXT PRIMARY KEY,
				thread_id TEXT NOT NULL,
				user_id TEXT NOT NULL,
				category_slug TEXT,
				title TEXT NOT NULL,
				original_request TEXT DEFAULT '',
				mode TEXT NOT NULL DEFAULT 'autonomous',
				status TEXT NOT NULL,
				tasks_json TEXT NOT NULL,
				budget_json TEXT NOT NULL,
				model_config_json TEXT NOT NULL,
				llm_calls INTEGER NOT NULL DEFAULT 0,
				tokens_used INTEGER NOT NULL DEFAULT 0,
				web_searches INTEGER NOT NULL DEFAULT 0,
				summary TEXT,
				error_message TEXT,
				created_at TEXT NOT NULL,
				updated_at TEXT NOT NULL,
				completed_at TEXT
			)
		""")

		await self._db.execute("""
			CREATE INDEX IF NOT EXISTS idx_task_plans_status_mode ON task_plans(status, mode)
		""")

		await self._db.execute("""
			CREATE INDEX IF NOT EXISTS idx_task_plans_thread ON task_plans(thread_id)
		""")

		await self._db.commit()
		logger.info(f"Plan store initialized: {self.db_path}")

	async def close(self):
		"""Close the database connection."""
		if self._db:
			await self._db.close()
			self._db = None

	async def _conn(self) -> aiosqlite.Connection:
		if not self._db:
			await self.init()
		return self._db

	async def create_plan(self, plan: TaskPlan) -> str:
		"""
		Persist a new plan.

		Args:
			plan: Plan to create. Its id is generated when empty.

		Returns:
			Plan ID
		"""
		db = await self._conn()

		plan.id = plan.id or f"plan_{uuid.uuid4().hex[:12]}"
		plan.created_at = datetime.now().isoformat()
		plan.updated_at = plan.created_at

		await db.execute(
			"""
			INSERT INTO task_plans (
				id, thread_id, user_id, category_slug, title, original_request, mode, status,
				tasks_json, budget_json, model_config_json, llm_calls, tokens_used, web_searches,
				summary, error_message, created_at, updated_at, completed_at
			)
			VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
			""",
			(
				plan.id,
				plan.thread_id,
				plan.user_id,
				plan.category_slug,
				plan.title,
				plan.original_request,
				plan.mode,
				plan.status.value,
				_dump_tasks(plan.tasks),
				plan.budget_limits.model_dump_json(),
				plan.models.model_dump_json(),
				plan.budget_used.llm_calls,
				plan.budget_used.tokens_used,
				plan.budget_used.web_searches,
				plan.summary,
				plan.error_message,
				plan.created_at,
				plan.updated_at,
				plan.completed_at,
			)
		)

		await db.commit()
		logger.info(f"Created plan {plan.id} with {len(plan.tasks)} tasks")

		return plan.id

	async def get_plan(self, plan_id: str) -> Optional[TaskPlan]:
		"""
		Get the latest persisted snapshot of a plan.

		Returns:
			TaskPlan or None if not found
		"""
		db = await self._conn()

		async with db.execute("SELECT * FROM task_plans WHERE id = ?", (plan_id,)) as cursor:
			row = await cursor.fetchone()

		if not row:
			return None

		return _row_to_plan(row)

	async def list_plans(
		self,
		status: Optional[PlanStatus] = None,
		mode: Optional[str] = None,
		thread_id: Optional[str] = None,
	) -> list[TaskPlan]:
		"""Search plans, newest first."""
		db = await self._conn()

		conditions = []
		params: list[Any] = []

		if status:
			conditions.append("status = ?")
			params.append(status.value)

		if mode:
			conditions.append("mode = ?")
			params.append(mode)

		if thread_id:
			conditions.append("thread_id = ?")
			params.append(thread_id)

		where_clause = " AND ".join(conditions) if conditions else "1=1"

		async with db.execute(
			f"SELECT * FROM task_plans WHERE {where_clause} ORDER BY created_at DESC",
			params
		) as cursor:
			rows = await cursor.fetchall()

		return [_row_to_plan(row) for row in rows]

	async def list_active_plans(self) -> list[TaskPlan]:
		"""All plans with status=active and mode=autonomous."""
		return await self.list_plans(status=PlanStatus.ACTIVE, mode="autonomous")

	async def get_active_usage(self) -> BudgetUsage:
		"""Sum budget counters across every active autonomous plan."""
		db = await self._conn()

		async with db.execute(
			"""
			SELECT
				COALESCE(SUM(llm_calls), 0) AS llm_calls,
				COALESCE(SUM(tokens_used), 0) AS tokens_used,
				COALESCE(SUM(web_searches), 0) AS web_searches
			FROM task_plans
			WHERE status = 'active' AND mode = 'autonomous'
			"""
		) as cursor:
			row = await cursor.fetchone()

		return BudgetUsage(
			llm_calls=row["llm_calls"],
			tokens_used=row["tokens_used"],
			web_searches=row["web_searches"],
		)

	async def increment_budget_usage(
		self,
		plan_id: str,
		llm_calls: int = 0,
		tokens_used: int = 0,
		web_searches: int = 0,
	) -> None:
		"""Atomically add to a plan's usage counters. Negative increments are ignored."""
		db = await self._conn()

		cursor = await db.execute(
			"""
			UPDATE task_plans
			SET llm_calls = llm_calls + ?,
				tokens_used = tokens_used + ?,
				web_searches = web_searches + ?,
				updated_at = ?
			WHERE id = ?
			""",
			(
				max(llm_calls, 0),
				max(tokens_used, 0),
				max(web_searches, 0),
				datetime.now().isoformat(),
				plan_id,
			)
		)
		await db.commit()

		if cursor.rowcount == 0:
			raise PlanNotFoundError(f"Plan not found: {plan_id}")

	async def transition_task_state(
		self,
		plan_id: str,
		task_id: int,
		new_status: TaskStatus,
		**extras: Any,
	) -> Task:
		"""
		Move a task forward and append the change to its state history.

		Args:
			plan_id: Plan ID
			task_id: Task ID within the plan
			new_status: Target status
			**extras: result, error, confidence_score, review_notes, tokens_used, llm_calls

		Returns:
			The updated Task

		Raises:
			PlanNotFoundError: If plan not found
			InvalidTransitionError: If the task is unknown or the move is not forward
		"""
		unknown = set(extras) - set(_TRANSITION_FIELDS)
		if unknown:
			raise ValueError(f"Unknown transition fields: {', '.join(sorted(unknown))}")

		db = await self._conn()

		async with self._tasks_lock:
			async with db.execute(
				"SELECT tasks_json FROM task_plans WHERE id = ?", (plan_id,)
			) as cursor:
				row = await cursor.fetchone()

			if not row:
				raise PlanNotFoundError(f"Plan not found: {plan_id}")

			tasks = _load_tasks(row["tasks_json"])
			task = next((t for t in tasks if t.id == task_id), None)
			if task is None:
				raise InvalidTransitionError(f"Task {task_id} not found in plan {plan_id}")

			allowed = ALLOWED_TRANSITIONS.get(task.status, frozenset())
			if new_status not in allowed:
				raise InvalidTransitionError(
					f"Task {task_id} cannot move from {task.status.value} to {new_status.value}"
				)

			now = datetime.now().isoformat()
			details = {k: v for k, v in extras.items() if v is not None}
			task.state_history.append(StateHistoryEntry(status=new_status, timestamp=now, details=details))
			task.status = new_status

			if new_status == TaskStatus.RUNNING:
				task.started_at = now
			if new_status in TERMINAL_TASK_STATUSES:
				task.completed_at = now

			for key, value in details.items():
				setattr(task, key, value)

			await db.execute(
				"UPDATE task_plans SET tasks_json = ?, updated_at = ? WHERE id = ?",
				(_dump_tasks(tasks), now, plan_id)
			)
			await db.commit()

		logger.debug(f"Plan {plan_id} task {task_id} -> {new_status.value}")
		return task

	async def set_plan_status(
		self,
		plan_id: str,
		status: PlanStatus,
		error_message: Optional[str] = None,
		summary: Optional[str] = None,
	) -> None:
		"""
		Move an active plan to a terminal status.

		Raises:
			PlanNotFoundError: If plan not found
			PlanTerminalError: If the plan already left active
		"""
		if not status.is_terminal:
			raise PlanTerminalError("Plans cannot be moved back to active")

		db = await self._conn()
		now = datetime.now().isoformat()

		cursor = await db.execute(
			"""
			UPDATE task_plans
			SET status = ?,
				error_message = COALESCE(?, error_message),
				summary = COALESCE(?, summary),
				updated_at = ?,
				completed_at = ?
			WHERE id = ? AND status = 'active'
			""",
			(status.value, error_message, summary, now, now, plan_id)
		)
		await db.commit()

		if cursor.rowcount == 0:
			plan = await self.get_plan(plan_id)
			if plan is None:
				raise PlanNotFoundError(f"Plan not found: {plan_id}")
			raise PlanTerminalError(f"Plan {plan_id} is already {plan.status.value}")

		logger.info(f"Plan {plan_id} -> {status.value}")

	async def complete_plan(self, plan_id: str, summary: str) -> None:
		"""Mark a plan completed with its summary."""
		await self.set_plan_status(plan_id, PlanStatus.COMPLETED, summary=summary)

	async def fail_plan(self, plan_id: str, error_message: str) -> None:
		"""Mark a plan failed. Task results are left untouched for inspection."""
		await self.set_plan_status(plan_id, PlanStatus.FAILED, error_message=error_message)

	async def cancel_plan(self, plan_id: str, reason: str = "Cancelled") -> None:
		"""Mark a plan cancelled."""
		await self.set_plan_status(plan_id, PlanStatus.CANCELLED, error_message=reason)

	async def recover_active_plans(
		self,
		grace_minutes: float = 5,
		now: Optional[datetime] = None,
	) -> int:
		"""
		Skip tasks left running by a crashed process.

		A running task whose latest history entry is its entry into running,
		older than the grace period, is moved to skipped.

		Returns:
			Number of plans that had at least one task recovered
		"""
		now = now or datetime.now()
		cutoff = now - timedelta(minutes=grace_minutes)
		recovered = 0

		for plan in await self.list_active_plans():
			touched = False
			for task in plan.tasks:
				if task.status != TaskStatus.RUNNING or not task.state_history:
					continue
				last = task.state_history[-1]
				if last.status != TaskStatus.RUNNING:
					continue
				try:
					started = datetime.fromisoformat(last.timestamp)
				except ValueError:
					logger.warning(f"Plan {plan.id} task {task.id} has unreadable timestamp {last.timestamp!r}")
					continue
				if started > cutoff:
					continue

				try:
					await self.transition_task_state(
						plan.id, task.id, TaskStatus.SKIPPED, error=RECOVERY_TIMEOUT_ERROR,
					)
				except (InvalidTransitionError, PlanNotFoundError) as e:
					# Another process moved it first
					logger.warning(f"Recovery skipped plan {plan.id} task {task.id}: {e}")
					continue
				touched = True
				logger.warning(f"Recovered stale running task {task.id} in plan {plan.id}")

			if touched:
				recovered += 1

		return recovered

	async def delete_plan(self, plan_id: str) -> bool:
		"""Hard-delete a plan. Only the retention job calls this."""
		db = await self._conn()

		cursor = await db.execute("DELETE FROM task_plans WHERE id = ?", (plan_id,))
		await db.commit()
		logger.info(f"Deleted plan {plan_id}")
		return cursor.rowcount > 0

	async def cleanup_old_plans(self, days_old: int = 30, now: Optional[datetime] = None) -> int:
		"""Delete terminal plans not updated for `days_old` days. Returns count deleted."""
		db = await self._conn()
		cutoff = ((now or datetime.now()) - timedelta(days=days_old)).isoformat()

		cursor = await db.execute(
			"""
			DELETE FROM task_plans
			WHERE status IN ('completed', 'cancelled', 'failed')
			AND updated_at < ?
			""",
			(cutoff,)
		)
		await db.commit()

		if cursor.rowcount:
			logger.info(f"Retention cleanup removed {cursor.rowcount} plans older than {days_old} days")
		return cursor.rowcount


def _dump_tasks(tasks: list[Task]) -> str:
	return json.dumps({"tasks": [t.model_dump(mode="json") for t in tasks]})


def _load_tasks(raw: str) -> list[Task]:
	return [Task.model_validate(t) for t in json.loads(raw)["tasks"]]


def _row_to_plan(row: aiosqlite.Row) -> TaskPlan:
	return TaskPlan(
		id=row["id"],
		thread_id=row["thread_id"],
		user_id=row["user_id"],
		category_slug=row["category_slug"],
		title=row["title"],
		original_request=row["original_request"] or "",
		mode=row["mode"],
		status=PlanStatus(row["status"]),
		tasks=_load_tasks(row["tasks_json"]),
		budget_limits=BudgetLimits.model_validate_json(row["budget_json"]),
		budget_used=BudgetUsage(
			llm_calls=row["llm_calls"],
			tokens_used=row["tokens_used"],
			web_searches=row["web_searches"],
		),
		models=ModelConfig.model_validate_json(row["model_config_json"]),
		summary=row["summary"],
		error_message=row["error_message"],
		created_at=row["created_at"],
		updated_at=row["updated_at"],
		completed_at=row["completed_at"],
	)


# Global store instance
_store: Optional[PlanStore] = None


async def get_plan_store(db_path: str = "") -> PlanStore:
	"""Get or create the global plan store."""
	global _store
	if _store is None:
		if not db_path:
			from ..config import get_config
			db_path = str(get_config().plans_db_path)
		_store = PlanStore(db_path)
		await _store.init()
	return _store
