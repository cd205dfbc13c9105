from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from models.enums import AccountStatus


class Person(BaseModel):
    """Registered identity as stored in the persons table."""

    id: str
    email: str
    display_name: str | None = None
    account_status: AccountStatus = AccountStatus.ACTIVE
    deceased_at: str | None = None
    created_at: str | None = None

    model_config = ConfigDict(extra="ignore")
