"""Version information for dev_stack_manager."""

__version__ = "0.1.0"
