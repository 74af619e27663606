"""Local development stack bootstrap and wiring tool."""

from dev_stack_manager.__version__ import __version__

__all__ = ["__version__"]
