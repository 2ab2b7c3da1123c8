# src/core/notifications/__init__.py
"""
Домен уведомлений.
Журнал уведомлений пользователей и тексты по событиям заказов и платежей.
"""

from src.core.notifications.models import Notification
from src.core.notifications.repository import NotificationRepository
from src.core.notifications.service import NotificationDispatcher

__all__ = [
    "Notification",
    "NotificationRepository",
    "NotificationDispatcher",
]
