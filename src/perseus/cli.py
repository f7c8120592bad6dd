"""Perseus command line interface.

Usage:
    perseus server
    perseus update (-p PATH -v VERSION | -m MODULE [-v VERSION]) [--prerelease]
    perseus query list-modules PATTERN
    perseus query list-module-versions MODULE_GLOB [--versions GLOB] [--latest]
    perseus query ancestors MODULE[@VERSION] [--json | --list | --dot | --format TEMPLATE]
    perseus query descendants MODULE[@VERSION] [--max-depth N]
    perseus find-paths FROM[@VERSION] TO[@VERSION] [--all] [--json]
    perseus version

Example:
    perseus query ancestors github.com/example/foo@v1.2.3 --list --max-depth 2
    perseus find-paths github.com/example/foo golang.org/x/sys --all
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from perseus import __version__
from perseus.common.config import ClientSettings, get_settings
from perseus.common.exceptions import ConfigurationError, InvalidArgumentError, PerseusError
from perseus.common.logging import get_logger, setup_logging
from perseus.gomod import ModuleProxy, parse_go_mod
from perseus.graph import semver
from perseus.graph.client import GraphQueryClient, HTTPGraphQueryClient
from perseus.graph.flatten import flatten_tree
from perseus.graph.identity import Direction, ModuleIdentity, check_path
from perseus.graph.pathfinder import PathFinder, collect_paths
from perseus.graph.render import (
    OutputFormat,
    OutputOptions,
    render_dot_graph,
    render_list,
    render_modules,
    render_paths_json_lines,
    render_paths_tree,
    render_template,
    render_tree_json,
)
from perseus.graph.retry import RetryingQueryClient
from perseus.graph.traversal import TreeWalker

logger = get_logger(__name__)


def _status(description: str) -> None:
    logger.debug("Progress", status=description)


def _version_arg(value: str) -> str:
    if not semver.is_valid(value):
        raise argparse.ArgumentTypeError(f"{value!r} is not a valid Go module semantic version string")
    return value


def _client(args: argparse.Namespace) -> HTTPGraphQueryClient:
    """Create an API client from the command line and environment."""
    settings = get_settings().client
    conf = ClientSettings(
        addr=args.server_addr or settings.addr,
        no_tls=args.insecure or settings.no_tls,
        timeout_seconds=settings.timeout_seconds,
    )
    if not conf.addr:
        raise ConfigurationError("The Perseus server address must be specified")
    logger.debug("Connecting to the Perseus server", base_url=conf.base_url)
    return HTTPGraphQueryClient(settings=conf)


def _output_options(args: argparse.Namespace) -> OutputOptions:
    return OutputOptions(
        json=getattr(args, "json", False),
        as_list=getattr(args, "list", False),
        dot=getattr(args, "dot", False),
        template=getattr(args, "format", "") or "",
    )


def _max_depth(args: argparse.Namespace) -> int:
    # non-positive depths are clamped rather than rejected
    return max(args.max_depth, 1)


async def resolve_module_arg(
    client: GraphQueryClient,
    arg: str,
    find_latest: bool,
) -> ModuleIdentity:
    """Parse "path[@version]", resolving a missing or "latest" version if asked.

    Raises:
        InvalidArgumentError: If the module path or version is invalid.
    """
    module = ModuleIdentity.parse(arg)
    check_path(module.path)
    if module.version in ("", "latest"):
        if not find_latest:
            return module.with_version("")
        _status(f"determining current version for {module.path}")
        return module.with_version(await client.resolve_latest_version(module.path))
    if not semver.is_valid(module.version):
        raise InvalidArgumentError(f"{module.version} is not a valid Go module semantic version string")
    return module


async def cmd_list_modules(args: argparse.Namespace) -> None:
    options = _output_options(args)
    modules: list[ModuleIdentity] = []
    async with _client(args) as client:
        token = ""
        while True:
            resp = await client.list_modules(args.pattern, page_token=token)
            modules.extend(ModuleIdentity(path=m.name) for m in resp.modules)
            token = resp.next_page_token
            if not token:
                break
    sys.stdout.write(render_modules(modules, options))


async def cmd_list_module_versions(args: argparse.Namespace) -> None:
    options = _output_options(args)
    modules: list[ModuleIdentity] = []
    async with _client(args) as client:
        token = ""
        while True:
            resp = await client.list_module_versions(
                module_filter=args.pattern,
                version_filter=args.versions,
                latest=args.latest,
                include_prerelease=args.include_prerelease,
                page_token=token,
            )
            modules.extend(ModuleIdentity(path=m.name, version=v) for m in resp.modules for v in m.versions)
            token = resp.next_page_token
            if not token:
                break
    if not modules:
        logger.debug("Found no matching versions", module=args.pattern, versions=args.versions)
        return
    sys.stdout.write(render_modules(modules, options))


async def cmd_query_tree(args: argparse.Namespace) -> None:
    options = _output_options(args)
    direction = Direction(args.direction)
    settings = get_settings()

    async with _client(args) as http_client:
        client = RetryingQueryClient(http_client)
        root = await resolve_module_arg(client, args.module, find_latest=True)
        walker = TreeWalker(client, status=_status, page_size=settings.search.page_size)
        tree = await walker.walk(root, direction, _max_depth(args))

    fmt = options.format
    if fmt == OutputFormat.TEMPLATE:
        output = render_template(flatten_tree(tree, status=_status), options.template)
    elif fmt == OutputFormat.LIST:
        output = render_list(flatten_tree(tree, status=_status), direction)
    elif fmt == OutputFormat.DOT:
        output = render_dot_graph(tree, direction)
    else:
        output = render_tree_json(tree)
    sys.stdout.write(output)


async def cmd_find_paths(args: argparse.Namespace) -> None:
    settings = get_settings()
    async with _client(args) as http_client:
        client = RetryingQueryClient(http_client)
        from_ = await resolve_module_arg(client, args.from_module, find_latest=True)
        to = await resolve_module_arg(client, args.to_module, find_latest=False)

        _status(f"determining path(s) from {from_} to {to}")
        finder = PathFinder(
            client,
            max_depth=_max_depth(args),
            parallelism=settings.search.parallelism,
            status=_status,
            page_size=settings.search.page_size,
        )
        paths = await collect_paths(finder, from_, to, show_all=args.all)

    if args.json:
        sys.stdout.write(render_paths_json_lines(paths))
    else:
        sys.stdout.write(render_paths_tree(paths))


async def cmd_update(args: argparse.Namespace) -> None:
    if bool(args.path) == bool(args.module):
        raise InvalidArgumentError(
            "Either a local path (--path) or a module path (--module) must be specified, but not both"
        )

    async with ModuleProxy() as proxy:
        if args.path:
            if not args.version:
                raise InvalidArgumentError("A version (--version) is required when updating from a local path")
            version = args.version
        else:
            version = args.version or await proxy.get_current_version(args.module, args.prerelease)

        if not args.prerelease and semver.prerelease(version):
            print(f"skipping pre-release tag {version}")
            return

        if args.path:
            gomod = Path(args.path) / "go.mod"
            if not gomod.is_file():
                raise InvalidArgumentError(f"invalid module path: {gomod} does not exist")
            mod_file = parse_go_mod(gomod.read_text(encoding="utf-8"), source=str(gomod))
        else:
            mod_file = await proxy.get_mod_file(args.module, version)

    module = ModuleIdentity(path=mod_file.module, version=version)
    deps = mod_file.direct_dependencies()
    logger.debug(
        "Processing Go module",
        module=str(module),
        dependencies=[str(d) for d in deps],
    )
    async with _client(args) as client:
        await client.update_dependencies(module, deps)


def cmd_server(args: argparse.Namespace) -> None:
    from perseus.api.main import run

    run()


def cmd_version(args: argparse.Namespace) -> None:
    print(f"perseus {__version__}")


def _client_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--server-addr",
        default="",
        help="host and port of the Perseus server (default: $PERSEUS_SERVER_ADDR)",
    )
    parent.add_argument(
        "--insecure",
        action="store_true",
        help="do not use TLS when connecting to the Perseus server",
    )
    return parent


def _format_parent(dot: bool) -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--json", action="store_true", help="format the output as JSON (default)")
    parent.add_argument("--list", action="store_true", help="format the output as a tabular list")
    if dot:
        parent.add_argument("--dot", action="store_true", help="format the output as a DOT directed graph")
    parent.add_argument(
        "-f",
        "--format",
        default="",
        help="format each result with a template, e.g. '{path}@{version}'",
    )
    return parent


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all sub-commands."""
    search = get_settings().search
    client_parent = _client_parent()

    parser = argparse.ArgumentParser(
        prog="perseus",
        description="Go module dependency graph tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-x",
        "--debug",
        action="store_true",
        default=os.environ.get("LOG_VERBOSITY") == "debug",
        help="enable verbose logging",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    server = commands.add_parser("server", help="run the Perseus REST API server")
    server.set_defaults(func=cmd_server)

    update = commands.add_parser(
        "update",
        parents=[client_parent],
        help="record a Go module's direct dependencies in the graph",
    )
    update.add_argument("-p", "--path", default="", help="local path to a Go module directory")
    update.add_argument("-m", "--module", default="", help="module path of a public Go module")
    update.add_argument("-v", "--version", type=_version_arg, default="", help="version of the module")
    update.add_argument("--prerelease", action="store_true", help="process pre-release versions")
    update.set_defaults(func=cmd_update)

    query = commands.add_parser("query", aliases=["q"], help="query the dependency graph")
    queries = query.add_subparsers(dest="query", metavar="QUERY")
    queries.required = True

    list_modules = queries.add_parser(
        "list-modules",
        aliases=["lm"],
        parents=[client_parent, _format_parent(dot=False)],
        help="list known modules matching a glob pattern",
    )
    list_modules.add_argument("pattern", help="module name glob")
    list_modules.set_defaults(func=cmd_list_modules)

    list_versions = queries.add_parser(
        "list-module-versions",
        aliases=["lmv"],
        parents=[client_parent, _format_parent(dot=False)],
        help="list known versions of modules matching a glob pattern",
    )
    list_versions.add_argument("pattern", help="module name glob")
    list_versions.add_argument("-v", "--versions", default="", help="version glob")
    list_versions.add_argument("--latest", action="store_true", help="only return the highest version")
    list_versions.add_argument(
        "-p",
        "--include-prerelease",
        action="store_true",
        help="include pre-release versions",
    )
    list_versions.set_defaults(func=cmd_list_module_versions)

    for name, aliases, direction, help_text in (
        ("ancestors", ["a", "dependencies"], Direction.DEPENDENCIES, "show the modules a module depends on"),
        ("descendants", ["d", "dependants", "dependents"], Direction.DEPENDENTS, "show the modules that depend on a module"),
    ):
        tree = queries.add_parser(
            name,
            aliases=aliases,
            parents=[client_parent, _format_parent(dot=True)],
            help=help_text,
        )
        tree.add_argument("module", help="module[@version]; the latest version is used if omitted")
        tree.add_argument(
            "--max-depth",
            type=int,
            default=search.max_depth,
            help=f"maximum number of levels to return (default: {search.max_depth})",
        )
        tree.set_defaults(func=cmd_query_tree, direction=direction.value)

    find_paths = commands.add_parser(
        "find-paths",
        aliases=["fp", "why"],
        parents=[client_parent],
        help="find dependency paths between two modules",
    )
    find_paths.add_argument("from_module", metavar="FROM", help="from_module[@version]")
    find_paths.add_argument("to_module", metavar="TO", help="to_module[@version]")
    find_paths.add_argument("--all", action="store_true", help="return all paths between the two modules")
    find_paths.add_argument("--json", action="store_true", help="format the output as line-delimited JSON")
    find_paths.add_argument(
        "--max-depth",
        type=int,
        default=search.max_depth,
        help=f"maximum number of hops in a path (default: {search.max_depth})",
    )
    find_paths.set_defaults(func=cmd_find_paths)

    version = commands.add_parser("version", help="print the version and exit")
    version.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug)

    try:
        result = args.func(args)
        if asyncio.iscoroutine(result):
            asyncio.run(result)
    except PerseusError as e:
        logger.debug("Command failed", command=args.command, error_code=e.error_code, details=e.details)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
