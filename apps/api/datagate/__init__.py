"""Orchestration gateway for dataset analysis and cleaning jobs."""
