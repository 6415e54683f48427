"""
training/store.py -- Read side of the questions table.

build_questions_query() is the only place the listing SQL is assembled. It is
pure (no I/O) so the statement can be compiled and inspected in tests.

Security:
  Every user-supplied value is a bound parameter. ORDER BY is the one clause
  that cannot be parameterized, so sort_by / sort_order go through fixed
  allow-lists; anything not listed silently falls back to `id ASC`.

Storage:
  PostgreSQL keeps topics as TEXT[] and filters with the array overlap
  operator (`topics && :topics`). Other dialects store topics as JSON; the
  overlap filter is PostgreSQL-only.

Layer rule: no imports from api/, graph/, or auth/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Optional

from sqlalchemy import JSON, Column, Integer, Select, String, Table, Text, bindparam, cast, or_, select
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.database import create_db_engine, metadata
from core.errors import StoreError
from training.models import Question, QuestionPage

logger = logging.getLogger("codestandoff.training.store")

DEFAULT_LIMIT = 25
MAX_LIMIT = 100

_questions = Table(
    "questions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(255), nullable=False),
    Column("slug", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("difficulty", String(32), nullable=False),
    Column("topics", JSON().with_variant(ARRAY(Text), "postgresql"), nullable=False, default=list),
    Column("test_case_count", Integer, nullable=False, default=0),
)

_SORT_COLUMNS = {
    "id": _questions.c.id,
    "difficulty": _questions.c.difficulty,
}
_SORT_ORDERS = {"ASC", "DESC"}


def normalize_page(offset: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    """Apply listing defaults: limit 25, non-positive -> 25, capped at 100; offset >= 0."""
    offset = offset or 0
    limit = limit if limit is not None else DEFAULT_LIMIT
    if limit <= 0:
        limit = DEFAULT_LIMIT
    if limit > MAX_LIMIT:
        limit = MAX_LIMIT
    if offset < 0:
        offset = 0
    return offset, limit


def build_questions_query(
    offset: int,
    limit: int,
    search: Optional[str] = None,
    difficulty: Optional[str] = None,
    topics: Optional[Sequence[str]] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Select:
    """Return the SELECT for one listing page.

    search matches a case-insensitive title substring or an id text prefix.
    Filters combine with AND. `limit` is used as given; callers that need a
    look-ahead row pass limit + 1.
    """
    stmt = select(_questions)

    if search:
        stmt = stmt.where(
            or_(
                _questions.c.title.ilike(f"%{search}%"),
                cast(_questions.c.id, Text).like(f"{search}%"),
            )
        )
    if difficulty:
        stmt = stmt.where(_questions.c.difficulty == difficulty)
    if topics:
        stmt = stmt.where(_questions.c.topics.op("&&")(bindparam("topics", list(topics), type_=ARRAY(Text))))

    column = _SORT_COLUMNS.get(sort_by or "", _questions.c.id)
    direction = sort_order if sort_order in _SORT_ORDERS else "ASC"
    stmt = stmt.order_by(column.desc() if direction == "DESC" else column.asc())

    return stmt.limit(limit).offset(offset)


class QuestionStore:
    """Repository for the questions catalogue."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_db_engine(db_url)
        metadata.create_all(self.engine, tables=[_questions])

    def get_questions(
        self,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        difficulty: Optional[str] = None,
        topics: Optional[Sequence[str]] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> QuestionPage:
        """Return one page of questions.

        One row beyond the page is fetched; its presence sets has_more and it
        is dropped from the returned list.
        """
        offset, limit = normalize_page(offset, limit)
        stmt = build_questions_query(offset, limit + 1, search, difficulty, topics, sort_by, sort_order)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as exc:
            logger.error("Question listing failed (%s)", type(exc).__name__)
            raise StoreError("failed to query questions") from exc

        questions = [_row_to_question(r) for r in rows]
        has_more = len(questions) > limit
        if has_more:
            questions = questions[:limit]
        logger.debug("Returning %d questions, has_more=%s", len(questions), has_more)
        return QuestionPage(questions=questions, has_more=has_more)

    def add_questions(self, questions: Iterable[Question]) -> None:
        """Bulk insert, for seeding local databases."""
        values = [
            {
                "id": q.id,
                "title": q.title,
                "slug": q.slug,
                "description": q.description,
                "difficulty": q.difficulty,
                "topics": list(q.topics),
                "test_case_count": q.test_case_count,
            }
            for q in questions
        ]
        if not values:
            return
        try:
            with self.engine.begin() as conn:
                conn.execute(_questions.insert(), values)
        except SQLAlchemyError as exc:
            raise StoreError("failed to insert questions") from exc

    def close(self) -> None:
        self.engine.dispose()


def _row_to_question(row) -> Question:
    return Question(
        id=row.id,
        title=row.title,
        slug=row.slug,
        description=row.description or "",
        difficulty=row.difficulty,
        topics=list(row.topics or []),
        test_case_count=row.test_case_count or 0,
    )
