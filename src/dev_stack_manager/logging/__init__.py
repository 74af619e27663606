"""Logging setup for the devstack CLI."""

from dev_stack_manager.logging.config import configure_logging, default_log_dir

__all__ = ["configure_logging", "default_log_dir"]
