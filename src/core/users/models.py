# src/core/users/models.py
"""
Модели данных пользователей.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.common.constants import UserRole


class User(BaseModel):
    """Модель пользователя (клиент, водитель или администратор)."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID пользователя")
    name: str = Field(..., description="Имя")
    email: str = Field(..., description="Email")
    phone: Optional[str] = Field(None, description="Номер телефона")
    role: UserRole = Field(UserRole.CLIENT, description="Роль пользователя")

    # is_active меняется только политикой неоплаченных комиссий
    is_active: bool = Field(True, description="Может ли водитель принимать заказы")
    is_confirmed: bool = Field(False, description="Подтверждён ли аккаунт администратором")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: str | UserRole) -> UserRole:
        return UserRole.parse(v)

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER

    def as_actor(self) -> Actor:
        """Возвращает идентичность пользователя для вызова операций."""
        return Actor(user_id=self.id, role=self.role, name=self.name)


class Actor(BaseModel):
    """
    Идентичность вызывающего.
    Приходит из внешнего слоя уже аутентифицированной; роль нормализуется один раз здесь.
    """

    user_id: str
    role: UserRole
    name: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: str | UserRole) -> UserRole:
        return UserRole.parse(v)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT
