"""Typed state definitions for the seoflow LangGraph workflows."""

from __future__ import annotations

from typing import Any, TypedDict


class ArticleWorkflowState(TypedDict, total=False):
    """State passed between the article-writing graph nodes."""

    # part name -> generated markdown, empty until generated
    parts: dict[str, str]
    # parts to (re)generate in this run
    requested: list[str]
    # parts whose generation returned nothing
    failed: list[str]

    # merge output, only set once all three parts exist
    body: str
    stats: dict[str, Any]


__all__ = ["ArticleWorkflowState"]
