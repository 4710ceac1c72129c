# app/db/models/system/setting.py
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from app.core.clock import utcnow

ADMIN_PHONE_KEY = "admin_phone"


class Setting(SQLModel, table=True):
    __tablename__ = "settings"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    key: str = Field(max_length=100, unique=True, index=True)
    value: str
    updated_at: datetime = Field(default_factory=utcnow)
