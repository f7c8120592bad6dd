"""Go module semantic version handling.

Go module versions always carry a leading "v" and may be written in
shorthand (v1, v1.2). Ordering follows Semantic Versioning 2.0.0:
invalid versions sort below every valid one, pre-releases sort below
the matching release, and build metadata is ignored.
"""

import re
from functools import cmp_to_key
from typing import NamedTuple

_SEMVER_RE = re.compile(
    r"^v(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*)"
    r"(?:\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r")?)?$"
)


class SemVer(NamedTuple):
    """Parsed semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...]
    build: str

    def __str__(self) -> str:
        s = f"v{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            s += "-" + ".".join(self.prerelease)
        return s


def parse(v: str) -> SemVer | None:
    """Parse a Go module version, returning None when it is invalid."""
    m = _SEMVER_RE.match(v or "")
    if not m:
        return None
    prerelease: tuple[str, ...] = ()
    if m.group("prerelease"):
        prerelease = tuple(m.group("prerelease").split("."))
        # numeric identifiers must not have leading zeros
        for ident in prerelease:
            if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
                return None
    return SemVer(
        major=int(m.group("major")),
        minor=int(m.group("minor") or 0),
        patch=int(m.group("patch") or 0),
        prerelease=prerelease,
        build=m.group("build") or "",
    )


def is_valid(v: str) -> bool:
    """Report whether v is a valid Go module semantic version."""
    return parse(v) is not None


def canonical(v: str) -> str:
    """Return the canonical vMAJOR.MINOR.PATCH[-pre] form, or "" if invalid."""
    sv = parse(v)
    return str(sv) if sv else ""


def prerelease(v: str) -> str:
    """Return the "-pre" suffix of v, or "" if v has none or is invalid."""
    sv = parse(v)
    if not sv or not sv.prerelease:
        return ""
    return "-" + ".".join(sv.prerelease)


def major(v: str) -> str:
    """Return the "vN" major prefix of v, or "" if invalid."""
    sv = parse(v)
    return f"v{sv.major}" if sv else ""


def _compare_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    if a == b:
        return 0
    # a release outranks any of its pre-releases
    if not a:
        return 1
    if not b:
        return -1
    for x, y in zip(a, b):
        if x == y:
            continue
        x_num, y_num = x.isdigit(), y.isdigit()
        if x_num and y_num:
            return -1 if int(x) < int(y) else 1
        if x_num:
            return -1
        if y_num:
            return 1
        return -1 if x < y else 1
    return -1 if len(a) < len(b) else 1


def compare(a: str, b: str) -> int:
    """Compare two versions, returning -1, 0, or +1.

    An invalid version is considered less than any valid one; two
    invalid versions compare equal.
    """
    sa, sb = parse(a), parse(b)
    if sa is None and sb is None:
        return 0
    if sa is None:
        return -1
    if sb is None:
        return 1
    for x, y in ((sa.major, sb.major), (sa.minor, sb.minor), (sa.patch, sb.patch)):
        if x != y:
            return -1 if x < y else 1
    return _compare_prerelease(sa.prerelease, sb.prerelease)


sort_key = cmp_to_key(compare)


def latest(versions: list[str], include_prerelease: bool = False) -> str:
    """Return the highest version in the list, or "" if there is none.

    Pre-releases are only considered when include_prerelease is set.
    """
    best = ""
    for v in versions:
        if not is_valid(v):
            continue
        if prerelease(v) and not include_prerelease:
            continue
        if not best or compare(v, best) > 0:
            best = v
    return best
