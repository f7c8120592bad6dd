"""SQLAlchemy database models."""

from perseus.models.base import Base
from perseus.models.module import Module, ModuleDependency, ModuleVersion

__all__ = [
    "Base",
    "Module",
    "ModuleVersion",
    "ModuleDependency",
]
