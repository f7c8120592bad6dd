"""Lenient go.mod parsing.

Only the module path and the require directives are interpreted; every
other directive, including block forms, is skipped.
"""

import shlex
from dataclasses import dataclass, field

from perseus.common.exceptions import InvalidArgumentError
from perseus.graph.identity import ModuleIdentity


@dataclass(frozen=True)
class Requirement:
    """A required module version."""

    path: str
    version: str
    indirect: bool = False

    def identity(self) -> ModuleIdentity:
        return ModuleIdentity(path=self.path, version=self.version)


@dataclass
class GoModFile:
    """The parts of a go.mod file needed to record dependencies."""

    module: str
    requires: list[Requirement] = field(default_factory=list)

    def direct_dependencies(self) -> list[ModuleIdentity]:
        """Requirements not marked "// indirect", in file order."""
        return [r.identity() for r in self.requires if not r.indirect]


def _split_comment(line: str) -> tuple[str, str]:
    code, sep, comment = line.partition("//")
    return code.strip(), comment.strip() if sep else ""


def _tokens(code: str, lineno: int, source: str) -> list[str]:
    try:
        return shlex.split(code, posix=True)
    except ValueError as e:
        raise InvalidArgumentError(f"{source}:{lineno}: {e}", cause=e) from e


def _requirement(tokens: list[str], comment: str, lineno: int, source: str) -> Requirement:
    if len(tokens) != 2:
        raise InvalidArgumentError(f"{source}:{lineno}: usage: require module/path v1.2.3")
    indirect = comment == "indirect" or comment.startswith("indirect;")
    return Requirement(path=tokens[0], version=tokens[1], indirect=indirect)


def parse_go_mod(text: str, source: str = "go.mod") -> GoModFile:
    """Parse the module path and requirements out of go.mod contents.

    Args:
        text: File contents.
        source: Name used in error messages.

    Raises:
        InvalidArgumentError: If a require line is malformed or the module
            directive is missing.
    """
    module = ""
    requires: list[Requirement] = []
    block: str | None = None

    for lineno, raw in enumerate(text.splitlines(), start=1):
        code, comment = _split_comment(raw)
        if not code:
            continue

        if block is not None:
            if code == ")":
                block = None
                continue
            if block == "require":
                requires.append(_requirement(_tokens(code, lineno, source), comment, lineno, source))
            continue

        tokens = _tokens(code, lineno, source)
        verb, args = tokens[0], tokens[1:]
        if args == ["("]:
            block = verb
            continue

        if verb == "module":
            if len(args) != 1:
                raise InvalidArgumentError(f"{source}:{lineno}: usage: module module/path")
            module = args[0]
        elif verb == "require":
            requires.append(_requirement(args, comment, lineno, source))

    if not module:
        raise InvalidArgumentError(f"{source}: no module directive found")
    return GoModFile(module=module, requires=requires)
