"""Shared pytest fixtures."""

from pathlib import Path

import pytest_asyncio

from autonomous_agent.plans.store import PlanStore


@pytest_asyncio.fixture
async def store(tmp_path: Path):
	"""A fresh SQLite plan store per test."""
	plan_store = PlanStore(str(tmp_path / "plans.db"))
	await plan_store.init()
	yield plan_store
	await plan_store.close()
