"""Database models package for the form builder service."""

from .base import Base
from .form import StoredForm

__all__ = [
    "Base",
    "StoredForm",
]
