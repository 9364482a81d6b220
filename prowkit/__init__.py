"""Helpers for Prow CI jobs: JUnit results, build storage, flaky tests, TestGrid, Slack and schedules."""

__version__ = "0.1.0"