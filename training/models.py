"""
training/models.py -- Question data class.

Rows are written by the content pipeline, not by this service; the API only
reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Question:
    id: int
    title: str
    slug: str
    description: str
    difficulty: str
    topics: list[str] = field(default_factory=list)
    test_case_count: int = 0


@dataclass
class QuestionPage:
    """One page of a listing. has_more is True when at least one row follows."""

    questions: list[Question]
    has_more: bool

    @property
    def total_count(self) -> int:
        # Size of this page, not of the full result set.
        return len(self.questions)
