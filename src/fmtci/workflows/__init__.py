from .format import format_workflow

__all__ = ["format_workflow"]
