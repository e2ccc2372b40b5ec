"""LangGraph state types."""

from .states import ArticleWorkflowState

__all__ = ["ArticleWorkflowState"]
