# src/core/assignment/__init__.py
"""
Домен назначения водителей.
Проверка допуска водителя и принятие заказа.
"""

from src.core.assignment.service import AssignmentGuard, EligibilityDecision

__all__ = [
    "AssignmentGuard",
    "EligibilityDecision",
]
