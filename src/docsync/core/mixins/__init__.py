"""
Core mixins for entity functionality.

These mixins provide the observable and persistence capabilities shared by
single records (pydantic models) and record-sets (plain classes).
"""

from .observable_mixin import Observable, ObservableMixin
from .persistence_mixin import PersistenceMixin

__all__ = ["Observable", "ObservableMixin", "PersistenceMixin"]
