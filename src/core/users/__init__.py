# src/core/users/__init__.py
"""
Домен пользователей.
Аккаунты, роли и идентичность вызывающего.
"""

from src.core.users.models import Actor, User
from src.core.users.repository import UserRepository

__all__ = [
    "Actor",
    "User",
    "UserRepository",
]
