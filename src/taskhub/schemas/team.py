"""Pydantic schemas for teams and members."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TeamRead(BaseModel):
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    avatar: Optional[str] = None

    model_config = {"from_attributes": True}
