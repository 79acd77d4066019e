"""Remote-call bridges."""

from .base import FunctionBridge
from .local import LocalImageBridge

__all__ = ["FunctionBridge", "LocalImageBridge"]
