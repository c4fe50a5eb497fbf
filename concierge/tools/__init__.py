from .base import ToolHandler, ToolSpec

__all__ = ["ToolHandler", "ToolSpec"]
