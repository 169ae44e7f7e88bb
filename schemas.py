"""
API Schemas

Pydantic models for what goes over the wire.
- Expense rows are rendered as ExpenseOut
- Users are rendered as UserOut (never with the password hash)
- Every response body follows the envelope {message, data?, errors?}
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class ExpenseOut(BaseModel):
    """
    A stored expense as returned to its owner.
    Timestamps serialize as createdAt/updatedAt.
    """
    id: str
    owner: str = Field(..., validation_alias=AliasChoices("owner_id", "owner"))
    title: str
    amount: float
    category: str
    date: datetime
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    class Config:
        from_attributes = True

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class UserOut(BaseModel):
    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class SignupRequest(BaseModel):
    # Checked by hand in auth.signup so the messages match the login form
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AuthData(BaseModel):
    user: UserOut
    token: str


class Envelope(BaseModel):
    message: Optional[str] = None
    data: Optional[Any] = None
    errors: Optional[List[str]] = None

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
