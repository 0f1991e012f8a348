"""autonomous-agent - Planner, executor, checker and summarizer loop over task DAGs."""

__version__ = "0.1.0"
