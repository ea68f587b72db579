"""Pydantic schemas for the support contact form."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, EmailStr, Field

SupportRequestType = Literal["general", "support", "bug", "feature", "partnership"]


class SupportRequestIn(BaseModel):
    """Contact form submission.

    ``honeypot`` and ``timestamp`` feed spam protection: humans leave the
    hidden honeypot empty and take more than a few seconds to fill the form.
    """

    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    subject: str = Field(..., min_length=5, max_length=200)
    message: str = Field(..., min_length=10, max_length=2000)
    type: SupportRequestType
    honeypot: str | None = Field(
        default=None,
        description="Hidden field; must stay empty for human submissions.",
    )
    timestamp: int = Field(
        ...,
        description="Milliseconds since epoch when the form was rendered.",
    )


class SupportRequestCreated(BaseModel):
    message: str
    id: int
