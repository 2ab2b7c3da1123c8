# src/core/notifications/models.py
"""
Модель уведомления пользователя.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.common.constants import NotificationType


class Notification(BaseModel):
    """Уведомление. Одна строка на получателя, хранится бессрочно."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    title: str
    message: str
    type: NotificationType
    read: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    # Время события-источника, а не время записи
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True
