"""Test suite for autonomous-agent."""
