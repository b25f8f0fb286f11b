"""
User request models.

Unknown fields are rejected; optional fields carry the defaults a new user
document starts with.
"""

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

CURRENCIES = (
    "USD", "EUR", "GBP", "JPY", "CNY", "INR", "CAD", "AUD", "CHF", "SEK",
    "NOK", "DKK", "PLN", "BRL", "MXN", "ZAR", "NGN", "KES", "EGP", "TRY",
    "AED", "SAR", "SGD", "HKD", "KRW", "NZD",
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Currency = Literal[CURRENCIES]  # type: ignore[valid-type]


class CreateUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8)
    role: Literal["admin", "user"] = "user"
    balance: float = Field(default=0, ge=0)
    currency: Currency = "USD"
    totalIncomes: float = Field(default=0, ge=0)
    totalExpenses: float = Field(default=0, ge=0)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value
