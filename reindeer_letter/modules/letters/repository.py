"""
Persistence gateway for letters.

Owns durability, not business rules. Every mutation accepts an optional
LetterFilter guard that is embedded in the UPDATE/DELETE WHERE clause, so
concurrent requests on the same row resolve by the database's row-level
consistency instead of read-modify-write in Python.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from reindeer_letter.models.letter import Letter
from reindeer_letter.models.user import User

logger = logging.getLogger(__name__)

ORDERABLE_COLUMNS = {
    "created_at": Letter.created_at,
    "updated_at": Letter.updated_at,
    "scheduled_at": Letter.scheduled_at,
}


@dataclass
class LetterFilter:
    """
    Conjunction of column predicates over letters.

    None means "don't filter on this column".
    """

    receiver_id: Optional[int] = None
    sender_id: Optional[int] = None
    is_draft: Optional[bool] = None
    is_delivered: Optional[bool] = None
    is_open: Optional[bool] = None
    category: Optional[str] = None
    due_on_or_before: Optional[date] = None

    def clauses(self) -> list:
        conditions = []
        if self.receiver_id is not None:
            conditions.append(Letter.receiver_id == self.receiver_id)
        if self.sender_id is not None:
            conditions.append(Letter.sender_id == self.sender_id)
        if self.is_draft is not None:
            conditions.append(Letter.is_draft == self.is_draft)
        if self.is_delivered is not None:
            conditions.append(Letter.is_delivered == self.is_delivered)
        if self.is_open is not None:
            conditions.append(Letter.is_open == self.is_open)
        if self.category is not None:
            conditions.append(Letter.category == self.category)
        if self.due_on_or_before is not None:
            conditions.append(Letter.scheduled_at.is_not(None))
            conditions.append(Letter.scheduled_at <= self.due_on_or_before)
        return conditions


class LetterRepository:
    """CRUD and filtered queries over the letters table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_letter_by_id(self, letter_id: int) -> Optional[Letter]:
        return await self.session.get(Letter, letter_id)

    async def find_letter(self, letter_id: int, where: Optional[LetterFilter] = None) -> Optional[Letter]:
        """Fetch a letter only if it also satisfies the filter."""
        query = select(Letter).where(Letter.id == letter_id)
        if where is not None:
            query = query.where(*where.clauses())
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_letters(
        self,
        where: LetterFilter,
        page: int,
        limit: int,
        order_by: str = "created_at",
    ) -> Tuple[List[Letter], int]:
        """
        Paginated query, newest first.

        Args:
            where: Filter applied to both the page and the total count
            page: 1-based page number
            limit: Page size
            order_by: One of ORDERABLE_COLUMNS (descending, id breaks ties)

        Returns:
            Tuple of (items on this page, total matching rows)
        """
        column = ORDERABLE_COLUMNS[order_by]
        conditions = where.clauses()

        items_result = await self.session.execute(
            select(Letter)
            .where(*conditions)
            .order_by(column.desc(), Letter.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total_result = await self.session.execute(
            select(func.count()).select_from(Letter).where(*conditions)
        )

        return list(items_result.scalars().all()), total_result.scalar_one()

    async def find_due_deliveries(self, today: date) -> List[Tuple[Letter, str]]:
        """
        Scheduled letters whose date has arrived, with the recipient's email.

        Returns:
            List of (letter, recipient_email), oldest schedule first
        """
        where = LetterFilter(is_draft=False, is_delivered=False, due_on_or_before=today)
        result = await self.session.execute(
            select(Letter, User.email)
            .join(User, Letter.receiver_id == User.id)
            .where(*where.clauses())
            .order_by(Letter.scheduled_at.asc(), Letter.id.asc())
        )
        return [(letter, email) for letter, email in result.all()]

    async def create_letter(self, **fields: Any) -> Letter:
        letter = Letter(**fields)
        self.session.add(letter)
        await self.session.flush()
        await self.session.refresh(letter)
        return letter

    async def update_letter(
        self,
        letter_id: int,
        fields: dict,
        where: Optional[LetterFilter] = None,
    ) -> Optional[Letter]:
        """
        Conditional update.

        Returns:
            The refreshed letter, or None when no row matched the id and guard
        """
        statement = (
            update(Letter)
            .where(Letter.id == letter_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        if where is not None:
            statement = statement.where(*where.clauses())

        result = await self.session.execute(statement)
        if result.rowcount == 0:
            return None

        return await self.session.get(Letter, letter_id, populate_existing=True)

    async def delete_letter(self, letter_id: int, where: Optional[LetterFilter] = None) -> bool:
        """Conditional hard delete. Returns False when nothing matched."""
        statement = (
            delete(Letter)
            .where(Letter.id == letter_id)
            .execution_options(synchronize_session=False)
        )
        if where is not None:
            statement = statement.where(*where.clauses())

        result = await self.session.execute(statement)
        return result.rowcount > 0

    async def refresh(self, letter: Letter) -> None:
        await self.session.refresh(letter)

    async def user_exists(self, user_id: int) -> bool:
        result = await self.session.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None
