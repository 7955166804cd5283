"""Pydantic v2 schemas package."""

from clipforge.schemas.task import CreditStatusRead, TaskCreated, TaskList, TaskRead

__all__ = [
    "CreditStatusRead",
    "TaskCreated",
    "TaskList",
    "TaskRead",
]
