"""Module identities and dependency direction.

A module is identified by its path and a semantic version. The version
may be empty, which means "resolve to the latest known version" and is
only meaningful at the query boundary.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from perseus.common.exceptions import InvalidArgumentError
from perseus.graph import semver

_PATH_ELEMENT_RE = re.compile(r"^[A-Za-z0-9\-._~]+$")
_FIRST_ELEMENT_RE = re.compile(r"^[a-z0-9\-.]+$")
_MAJOR_SUFFIX_RE = re.compile(r"^v[0-9]+$")


class Direction(str, Enum):
    """Which edges of a module to follow."""

    DEPENDENCIES = "dependencies"  # ancestors, modules the subject depends on
    DEPENDENTS = "dependents"  # descendants, modules that depend on the subject


@dataclass(frozen=True, order=True)
class ModuleIdentity:
    """A module path plus an optional version."""

    path: str
    version: str = ""

    def __str__(self) -> str:
        if not self.version:
            return self.path
        return f"{self.path}@{self.version}"

    @classmethod
    def parse(cls, arg: str) -> "ModuleIdentity":
        """Parse "path[@version]" into a module identity.

        Raises:
            InvalidArgumentError: If the argument has more than one "@" or
                an empty path.
        """
        toks = arg.strip().split("@")
        if len(toks) > 2:
            raise InvalidArgumentError(f"Invalid module path/version {arg!r}")
        path = toks[0]
        version = toks[1] if len(toks) == 2 else ""
        if not path:
            raise InvalidArgumentError(f"Invalid module path/version {arg!r}: the module path is empty")
        return cls(path=path, version=version)

    def with_version(self, version: str) -> "ModuleIdentity":
        return ModuleIdentity(path=self.path, version=version)

    def matches(self, target: "ModuleIdentity") -> bool:
        """Report whether this module satisfies a search target.

        A target without a version matches every version of its path.
        """
        return self.path == target.path and (not target.version or self.version == target.version)


@dataclass
class DependencyPage:
    """One page of direct dependency edges.

    An empty next_page_token means there are no further pages.
    """

    modules: list[ModuleIdentity] = field(default_factory=list)
    next_page_token: str = ""


def split_path_major(path: str) -> tuple[str, str]:
    """Split a module path into its prefix and "/vN" major suffix, if any."""
    prefix, _, last = path.rpartition("/")
    if prefix and _MAJOR_SUFFIX_RE.match(last):
        return prefix, last
    return path, ""


def check_path(path: str) -> None:
    """Validate a Go module path.

    Raises:
        InvalidArgumentError: Describing the first problem found.
    """
    if not path:
        raise InvalidArgumentError("malformed module path: empty string")
    if path.startswith("/") or path.endswith("/") or "//" in path:
        raise InvalidArgumentError(f"malformed module path {path!r}: leading, trailing, or double slash")
    elements = path.split("/")
    for elem in elements:
        if not _PATH_ELEMENT_RE.match(elem):
            raise InvalidArgumentError(f"malformed module path {path!r}: invalid char in path element {elem!r}")
        if elem.startswith(".") or elem.endswith("."):
            raise InvalidArgumentError(f"malformed module path {path!r}: leading or trailing dot in path element")
    first = elements[0]
    if "." not in first:
        raise InvalidArgumentError(f"malformed module path {path!r}: missing dot in first path element")
    if first.startswith("-"):
        raise InvalidArgumentError(f"malformed module path {path!r}: leading dash in first path element")
    if not _FIRST_ELEMENT_RE.match(first):
        raise InvalidArgumentError(f"malformed module path {path!r}: invalid char in first path element")
    _, suffix = split_path_major(path)
    if suffix and (suffix in ("v0", "v1") or suffix.startswith("v0")):
        raise InvalidArgumentError(f"malformed module path {path!r}: invalid major version suffix /{suffix}")


def check_module(path: str, version: str) -> None:
    """Validate a module path and version pair.

    The version must be canonical and its major version must agree with
    the path's "/vN" suffix; v2+ versions of a path without a suffix must
    be marked "+incompatible".

    Raises:
        InvalidArgumentError: If the pair is invalid.
    """
    check_path(path)
    sv = semver.parse(version)
    if sv is None:
        raise InvalidArgumentError(f"{path}@{version}: invalid version: not a semantic version")
    if sv.build not in ("", "incompatible"):
        raise InvalidArgumentError(f"{path}@{version}: invalid version: build metadata not allowed")
    expected = semver.canonical(version) + ("+incompatible" if sv.build else "")
    if version != expected:
        raise InvalidArgumentError(f"{path}@{version}: invalid version: not a canonical version (should be {expected})")

    _, suffix = split_path_major(path)
    if suffix:
        if f"v{sv.major}" != suffix:
            raise InvalidArgumentError(f"{path}@{version}: invalid version: should be {suffix}, not v{sv.major}")
        if sv.build:
            raise InvalidArgumentError(f"{path}@{version}: invalid version: +incompatible suffix not allowed")
    elif sv.major >= 2 and not sv.build:
        raise InvalidArgumentError(
            f"{path}@{version}: invalid version: should be v0 or v1, not v{sv.major}"
        )
