# src/common/exceptions.py
"""
Исключения доменного слоя.
Коды статусов соответствуют HTTP, чтобы внешний слой мог их транслировать как есть.
"""

from __future__ import annotations

from typing import Any, Optional


class DispatchError(Exception):
    """Базовое исключение подсистемы заказов и комиссий."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(DispatchError):
    """Некорректные входные данные или недопустимый переход статуса."""

    status_code = 400


class PermissionDeniedError(DispatchError):
    """У актора нет прав на операцию."""

    status_code = 403


class DriverNotEligibleError(PermissionDeniedError):
    """Водитель не может принять новый заказ."""

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None) -> None:
        self.reason = reason
        super().__init__(reason, details)


class NotFoundError(DispatchError):
    """Заказ, платёж или пользователь не найден."""

    status_code = 404

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            f"{resource} '{identifier}' не найден",
            {"resource": resource, "id": identifier},
        )


class ConflictError(DispatchError):
    """Условие оптимистичной записи больше не выполняется."""

    status_code = 409


class InternalError(DispatchError):
    """Ошибка хранилища."""

    status_code = 500
