import datetime as dt
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class RegisterIn(BaseModel):
    username: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None


class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CategoryIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = Field(default=None, max_length=32)
    type: Optional[TransactionType] = None


class UserCategoriesIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[int] = Field(default=None, alias="userId")
    categories: Optional[list[CategoryIn]] = None


class TransactionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[dt.date] = None
    user: Optional[str] = Field(default=None, max_length=100)
    user_id: Optional[int] = Field(default=None, alias="userId")


class CSVRow(BaseModel):
    type: TransactionType
    description: str
    amount_cents: int
    date: date
    user: Optional[str] = None
