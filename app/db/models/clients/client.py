# app/db/models/clients/client.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from app.core.clock import utcnow


class Client(SQLModel, table=True):
    __tablename__ = "clients"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(max_length=255, index=True)
    address: Optional[str] = Field(default=None)
    primary_contact: str = Field(max_length=20, index=True)  # OTP recipient for visits
    secondary_contact: Optional[str] = Field(default=None, max_length=20)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
