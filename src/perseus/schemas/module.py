"""Pydantic schemas for module API endpoints."""

from enum import Enum

from pydantic import BaseModel, Field


class ModuleSchema(BaseModel):
    """A module and zero or more of its versions."""

    name: str = Field(..., max_length=512)
    versions: list[str] = Field(default_factory=list)


class ModuleListResponse(BaseModel):
    """A page of modules.

    An empty next_page_token means there are no further pages.
    """

    modules: list[ModuleSchema] = Field(default_factory=list)
    next_page_token: str = ""


class CreateModuleRequest(BaseModel):
    """Schema for registering a module."""

    module: ModuleSchema


class CreateModuleResponse(BaseModel):
    """Schema for the registered module."""

    module: ModuleSchema


class UpdateDependenciesRequest(BaseModel):
    """Schema for recording the direct dependencies of a module version."""

    module_name: str = Field(..., max_length=512)
    version: str = Field(..., max_length=128)
    dependencies: list[ModuleSchema] = Field(default_factory=list)


class VersionOption(str, Enum):
    """Which versions of a module to list."""

    NONE = "none"
    LATEST = "latest"
    ALL = "all"
