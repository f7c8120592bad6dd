"""Go module metadata - go.mod parsing and module proxy access."""

from perseus.gomod.modfile import GoModFile, Requirement, parse_go_mod
from perseus.gomod.proxy import ModuleProxy

__all__ = [
    "GoModFile",
    "Requirement",
    "parse_go_mod",
    "ModuleProxy",
]
