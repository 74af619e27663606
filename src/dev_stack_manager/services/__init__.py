"""Orchestration services that drive the stack's containers and APIs."""
