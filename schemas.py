from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import DEFAULT_CATEGORY_COLOR, TransactionType


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"
COLOR_PATTERN = r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$"


class UserIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=128)


class LoginIn(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class ProfileIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254, pattern=EMAIL_PATTERN)


class PasswordIn(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class CategoryIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, pattern=COLOR_PATTERN)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: date
    type: TransactionType
    amount_cents: int = Field(..., ge=0)
    category_id: int
    note: str = Field(default="", max_length=500)
