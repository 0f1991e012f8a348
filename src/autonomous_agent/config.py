"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import platformdirs

APP_NAME = "autonomous-agent"
APP_AUTHOR = "autonomous-agent"
ENV_PREFIX = "AUTONOMOUS_AGENT_"


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	plans_db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	# Global budget ceilings, shared by every active autonomous plan
	max_llm_calls: int = 500
	max_tokens: int = 2_000_000
	max_web_searches: int = 100
	max_duration_minutes: int = 30
	task_timeout_minutes: int = 5

	# Orchestration behaviour
	confidence_threshold: int = 80
	recovery_grace_minutes: int = 5
	max_iterations: int = 1000
	retention_days: int = 30

	# Model selection: a preset name plus optional per-role overrides
	model_preset: str = "default"
	models: dict[str, dict[str, Any]] = field(default_factory=dict)

	def __post_init__(self) -> None:
		self.plans_db_path = self.data_dir / "plans.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)

	def budget_limits(self):
		"""Build the global BudgetLimits from the configured ceilings."""
		from .plans.models import BudgetLimits

		return BudgetLimits(
			max_llm_calls=self.max_llm_calls,
			max_tokens=self.max_tokens,
			max_web_searches=self.max_web_searches,
			max_duration_minutes=self.max_duration_minutes,
			task_timeout_minutes=self.task_timeout_minutes,
		)

	def model_config(self):
		"""Resolve the preset and apply per-role overrides."""
		from .plans.models import MODEL_PRESETS, ModelConfig

		if self.model_preset not in MODEL_PRESETS:
			raise ValueError(f"Unknown model preset: {self.model_preset}")

		data = MODEL_PRESETS[self.model_preset].model_dump()
		for role, overrides in self.models.items():
			if role in data:
				data[role].update(overrides)
		return ModelConfig.model_validate(data)


_PATH_FIELDS = {"config_dir", "data_dir"}
_INT_FIELDS = {
	"max_llm_calls",
	"max_tokens",
	"max_web_searches",
	"max_duration_minutes",
	"task_timeout_minutes",
	"confidence_threshold",
	"recovery_grace_minutes",
	"max_iterations",
	"retention_days",
}


def _apply_env_overrides(config: Config) -> Config:
	"""Apply AUTONOMOUS_AGENT_* environment variable overrides."""
	for attr in _PATH_FIELDS:
		val = os.getenv(f"{ENV_PREFIX}{attr.upper()}")
		if val:
			setattr(config, attr, Path(val))

	for attr in _INT_FIELDS:
		val = os.getenv(f"{ENV_PREFIX}{attr.upper()}")
		if val:
			setattr(config, attr, int(val))

	preset = os.getenv(f"{ENV_PREFIX}MODEL_PRESET")
	if preset:
		config.model_preset = preset

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	for key, val in data.items():
		if not hasattr(config, key):
			continue
		if key in _PATH_FIELDS:
			setattr(config, key, Path(os.path.expanduser(val)))
		elif key in _INT_FIELDS:
			setattr(config, key, int(val))
		else:
			setattr(config, key, val)

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	# First pass lets AUTONOMOUS_AGENT_CONFIG_DIR locate config.toml
	config = _apply_env_overrides(config)
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config
