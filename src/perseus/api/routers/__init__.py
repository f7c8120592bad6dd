"""API routers."""

from perseus.api.routers import admin, modules

__all__ = [
    "admin",
    "modules",
]
