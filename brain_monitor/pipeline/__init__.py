"""Execution pipeline: task runner, adaptive runner and watch controller."""
