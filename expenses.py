from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_db
from ledger import ExpenseLedger
from models import UserModel
from schemas import Envelope
from validation import SUGGESTED_CATEGORIES

router = APIRouter(prefix="/api/expenses", tags=["expenses"])


def get_ledger(db: AsyncSession = Depends(get_db)) -> ExpenseLedger:
    return ExpenseLedger(db)


@router.get("/categories")
async def list_categories(current_user: UserModel = Depends(get_current_user)):
    return Envelope(message="Categories fetched", data=SUGGESTED_CATEGORIES).to_json()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: Dict[str, Any] = Body(...),
    ledger: ExpenseLedger = Depends(get_ledger),
    current_user: UserModel = Depends(get_current_user),
):
    expense = await ledger.create(current_user.id, payload)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=Envelope(message="Expense created", data=expense.to_json()).to_json(),
    )


@router.get("")
async def list_expenses(
    ledger: ExpenseLedger = Depends(get_ledger),
    current_user: UserModel = Depends(get_current_user),
):
    expenses = await ledger.list(current_user.id)
    return Envelope(message="Expenses fetched", data=[item.to_json() for item in expenses]).to_json()


@router.put("/{expense_id}")
@router.patch("/{expense_id}")
async def update_expense(
    expense_id: str,
    payload: Dict[str, Any] = Body(...),
    ledger: ExpenseLedger = Depends(get_ledger),
    current_user: UserModel = Depends(get_current_user),
):
    expense = await ledger.update(current_user.id, expense_id, payload)
    return Envelope(message="Expense updated", data=expense.to_json()).to_json()


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    ledger: ExpenseLedger = Depends(get_ledger),
    current_user: UserModel = Depends(get_current_user),
):
    expense = await ledger.delete(current_user.id, expense_id)
    return Envelope(message="Expense deleted", data=expense.to_json()).to_json()
