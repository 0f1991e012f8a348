"""Visualizer package - Rich terminal views for autonomous plans."""

from .plan_list import render_plan_list
from .plan_progress import render_plan_progress, render_plan_summary

__all__ = [
	"render_plan_list",
	"render_plan_progress",
	"render_plan_summary",
]
