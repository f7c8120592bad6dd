"""Text renderings of dependency trees, lists, and paths.

Every renderer returns a string; output format is chosen by the caller
through OutputOptions rather than process-wide state.
"""

import json
from collections import deque
from dataclasses import dataclass
from enum import Enum

from perseus.common.exceptions import InvalidArgumentError
from perseus.graph.flatten import DependencyItem
from perseus.graph.identity import Direction, ModuleIdentity
from perseus.graph.traversal import DependencyTreeNode


class OutputFormat(str, Enum):
    JSON = "json"
    LIST = "list"
    DOT = "dot"
    TEMPLATE = "template"


@dataclass(frozen=True)
class OutputOptions:
    """Selected output format for query results.

    At most one of the formats may be requested; JSON is the default.
    """

    json: bool = False
    as_list: bool = False
    dot: bool = False
    template: str = ""

    def __post_init__(self) -> None:
        selected = sum([self.json, self.as_list, self.dot, bool(self.template)])
        if selected > 1:
            raise InvalidArgumentError("Only one of --json, --list, --dot, or --format may be specified")

    @property
    def format(self) -> OutputFormat:
        if self.template:
            return OutputFormat.TEMPLATE
        if self.as_list:
            return OutputFormat.LIST
        if self.dot:
            return OutputFormat.DOT
        return OutputFormat.JSON


def _module_dict(module: ModuleIdentity) -> dict[str, str]:
    return {"Path": module.path, "Version": module.version}


def render_table(header: list[str], rows: list[list[str]], min_width: int = 10, padding: int = 2) -> str:
    """Render rows as left-aligned columns, the last column unpadded."""
    all_rows = [header, *rows]
    widths = [
        max(min_width, max(len(r[i]) for r in all_rows) + padding)
        for i in range(len(header) - 1)
    ]
    lines = []
    for row in all_rows:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row[:-1])]
        lines.append("".join(cells) + row[-1])
    return "\n".join(lines) + "\n"


def render_tree_json(tree: DependencyTreeNode) -> str:
    """Render a dependency tree as a single line of JSON."""
    return json.dumps(tree.to_dict(), separators=(",", ":")) + "\n"


def render_list(items: list[DependencyItem], direction: Direction) -> str:
    """Render flattened dependencies as a two column table."""
    label = "Dependency" if Direction(direction) == Direction.DEPENDENCIES else "Dependent"
    rows = [[item.name, str(item.is_direct).lower()] for item in items]
    return render_table([label, "Direct"], rows)


def render_template(items: list[DependencyItem] | list[ModuleIdentity], template: str) -> str:
    """Apply a str.format template to each item, one line per item.

    Available fields are path, version and name, plus is_direct and degree
    for flattened dependencies.

    Raises:
        InvalidArgumentError: If the template references an unknown field
            or is malformed.
    """
    lines = []
    for item in items:
        fields = {"path": item.path, "version": item.version, "name": _name(item)}
        if isinstance(item, DependencyItem):
            fields["is_direct"] = item.is_direct
            fields["degree"] = item.degree
        try:
            lines.append(template.format(**fields))
        except (AttributeError, KeyError, IndexError, ValueError) as e:
            raise InvalidArgumentError(f"Invalid output template {template!r}: {e}", cause=e) from e
    return "".join(line + "\n" for line in lines)


def _name(item: DependencyItem | ModuleIdentity) -> str:
    if isinstance(item, DependencyItem):
        return item.name
    return str(item)


def render_dot_graph(tree: DependencyTreeNode, direction: Direction) -> str:
    """Render a dependency tree as a Graphviz DOT digraph.

    Edges are emitted breadth first and each distinct edge only once.
    """
    rank_dir, arrow_dir = "RL", ""
    if Direction(direction) == Direction.DEPENDENCIES:
        rank_dir, arrow_dir = "LR", " [dir=back]"

    lines = [
        "digraph G {",
        '    bgcolor="#414142";',
        f'    rankdir="{rank_dir}";',
        "    subgraph cluster_D {",
        '        label="";',
        '        node [shape=box style="rounded,filled" fontname=Arial fontsize=14 margin=.25 '
        'fillcolor="#F3F3F4" fontcolor="#58595B"]',
        '        edge [color="#EC3525"]',
        '        bgcolor="#58595B";',
        '        style="rounded";',
    ]
    seen: set[tuple[str, str]] = set()
    queue: deque[DependencyTreeNode] = deque([tree])
    while queue:
        node = queue.popleft()
        for dep in node.deps:
            edge = (str(node.module), str(dep.module))
            if edge in seen:
                continue
            seen.add(edge)
            lines.append(f"        {json.dumps(edge[1])} -> {json.dumps(edge[0])}{arrow_dir}")
            if dep.deps:
                queue.append(dep)
    lines.extend(["    }", "}"])
    return "\n".join(lines) + "\n"


def render_paths_tree(paths: list[list[ModuleIdentity]]) -> str:
    """Render each path as an indented chain of modules."""
    lines = []
    for path in paths:
        for level, module in enumerate(path):
            prefix = "" if level == 0 else " " * (3 * (level - 1)) + "-> "
            lines.append(f"{prefix}{module}")
    return "".join(line + "\n" for line in lines)


def render_paths_json_lines(paths: list[list[ModuleIdentity]]) -> str:
    """Render each path as one nested JSON object per line.

    Every level has a single key, the module, whose value is the rest of
    the path: {"a@v1":{"b@v2":{}}}.
    """
    lines = []
    for path in paths:
        obj: dict = {}
        for module in reversed(path):
            obj = {str(module): obj}
        lines.append(json.dumps(obj, separators=(",", ":")))
    return "".join(line + "\n" for line in lines)


def render_modules(modules: list[ModuleIdentity], options: OutputOptions) -> str:
    """Render a module listing as JSON, a table, or a template."""
    fmt = options.format
    if fmt == OutputFormat.TEMPLATE:
        return render_template(modules, options.template)
    if fmt == OutputFormat.LIST:
        return render_table(["Module", "Version"], [[m.path, m.version] for m in modules])
    if fmt == OutputFormat.DOT:
        raise InvalidArgumentError("DOT output is only supported for dependency trees")
    return render_modules_json(modules)


def render_modules_json(modules: list[ModuleIdentity]) -> str:
    return json.dumps([_module_dict(m) for m in modules], separators=(",", ":")) + "\n"
