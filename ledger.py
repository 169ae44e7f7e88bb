"""
Owner-scoped expense operations.

Every statement issued here carries the caller's owner id in its WHERE
clause, so a record that belongs to somebody else is indistinguishable from
one that does not exist. Updates and deletes are single UPDATE/DELETE ...
RETURNING statements; the store's atomicity is the only concurrency control
(last writer wins).
"""

import logging
import uuid
from typing import Any, List, Mapping

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import InvalidIdentifier, NotFound, PersistenceError, ValidationError
from models import ExpenseModel, utcnow
from schemas import ExpenseOut
from validation import ValidatedExpense, ValidationErrors, validate_expense_payload

logger = logging.getLogger(__name__)

# Never taken from a client payload
PROTECTED_FIELDS = ("owner", "owner_id", "user", "id", "_id", "createdAt", "updatedAt", "created_at", "updated_at")


def is_valid_expense_id(expense_id: Any) -> bool:
    if not isinstance(expense_id, str):
        return False
    try:
        uuid.UUID(expense_id)
    except ValueError:
        return False
    return True


def strip_protected_fields(payload: Mapping[str, Any]) -> dict:
    return {key: value for key, value in payload.items() if key not in PROTECTED_FIELDS}


def _validated(payload: Mapping[str, Any]) -> ValidatedExpense:
    result = validate_expense_payload(strip_protected_fields(payload))
    if isinstance(result, ValidationErrors):
        raise ValidationError(result.errors)
    return result


class ExpenseLedger:
    """Expense CRUD bound to one database session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _owned(owner_id: str, expense_id: str):
        return (ExpenseModel.id == expense_id, ExpenseModel.owner_id == owner_id)

    async def _fail(self, message: str, error: SQLAlchemyError) -> PersistenceError:
        await self.session.rollback()
        logger.exception(message)
        return PersistenceError(message, details=str(error))

    async def create(self, owner_id: str, payload: Mapping[str, Any]) -> ExpenseOut:
        expense_data = _validated(payload)
        try:
            expense = ExpenseModel(owner_id=owner_id, **expense_data.as_values())
            self.session.add(expense)
            await self.session.commit()
            await self.session.refresh(expense)
        except SQLAlchemyError as e:
            raise await self._fail("Failed to create expense", e) from e

        logger.info("Created expense %s for user %s", expense.id, owner_id)
        return ExpenseOut.model_validate(expense)

    async def list(self, owner_id: str) -> List[ExpenseOut]:
        query = (
            select(ExpenseModel)
            .where(ExpenseModel.owner_id == owner_id)
            .order_by(ExpenseModel.created_at.desc(), ExpenseModel.id.desc())
        )
        try:
            result = await self.session.execute(query)
            items = result.scalars().all()
        except SQLAlchemyError as e:
            raise await self._fail("Failed to fetch expenses", e) from e
        return [ExpenseOut.model_validate(item) for item in items]

    async def update(self, owner_id: str, expense_id: str, payload: Mapping[str, Any]) -> ExpenseOut:
        if not is_valid_expense_id(expense_id):
            raise InvalidIdentifier()
        expense_data = _validated(payload)

        stmt = (
            update(ExpenseModel)
            .where(*self._owned(owner_id, expense_id))
            .values(**expense_data.as_values(), updated_at=utcnow())
            .returning(ExpenseModel)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
            expense = result.scalar_one_or_none()
            updated = ExpenseOut.model_validate(expense) if expense is not None else None
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("Failed to update expense", e) from e

        if updated is None:
            raise NotFound()
        logger.info("Updated expense %s", expense_id)
        return updated

    async def delete(self, owner_id: str, expense_id: str) -> ExpenseOut:
        if not is_valid_expense_id(expense_id):
            raise InvalidIdentifier()

        stmt = delete(ExpenseModel).where(*self._owned(owner_id, expense_id)).returning(ExpenseModel)
        try:
            result = await self.session.execute(stmt)
            expense = result.scalar_one_or_none()
            deleted = ExpenseOut.model_validate(expense) if expense is not None else None
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("Failed to delete expense", e) from e

        if deleted is None:
            raise NotFound()
        logger.info("Deleted expense %s", expense_id)
        return deleted
