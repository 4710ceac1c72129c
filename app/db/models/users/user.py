# app/db/models/users/user.py
from enum import Enum
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from app.core.clock import utcnow


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ENGINEER = "ENGINEER"


class User(SQLModel, table=True):
    """Back-office staff: administrators and site engineers"""
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    name: str = Field(max_length=255)
    phone: str = Field(max_length=20, index=True)
    role: UserRole = Field(default=UserRole.ENGINEER)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
