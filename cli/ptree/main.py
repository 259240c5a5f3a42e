from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, NoReturn, Optional

import typer

from ptreex import PersistentNode
from ptreex import config as cx_config
from ptreex.errors import PersistentTreeError

from .options import parse_node_path, resolve_format_flag, resolve_node


_HELP = """Persistent tree (ptree) command line interface.

Subcommands inspect saved trees without copying their payloads."""

app = typer.Typer(
    add_completion=False,
    pretty_exceptions_enable=False,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
    help=_HELP,
)

_HEADER_OPTION = typer.Option(
    None,
    "--header/--no-header",
    help="Expect the PTREE signature before the root record (default: PTREEX_FILE_HEADER).",
)


@app.callback()
def ptree_callback(ctx: typer.Context, header: Optional[bool] = _HEADER_OPTION) -> None:
    ctx.obj = {"header": header}


def _header_choice(ctx: typer.Context, header: Optional[bool]) -> Optional[bool]:
    """A subcommand flag wins over the group flag; both default to the environment."""

    if header is not None:
        return header
    return (ctx.obj or {}).get("header")


def _fail(message: str) -> NoReturn:
    typer.echo(f"error: {message}", err=True)
    raise typer.Exit(code=1)


@contextmanager
def _opened_tree(path: Path, header: Optional[bool]) -> Iterator[PersistentNode]:
    root = PersistentNode()
    try:
        root.load(path, header=header)
    except PersistentTreeError as exc:
        root.close()
        _fail(str(exc))
    try:
        yield root
    finally:
        root.close()


def _render(node: PersistentNode, trail: List[int], lines: List[str]) -> None:
    label = "/".join(str(index) for index in trail) or "root"
    storage = "windowed" if node.is_windowed else "owned"
    lines.append(f"{'  ' * len(trail)}{label}  {node.size} bytes  [{storage}]")
    for index, child in enumerate(node):
        _render(child, trail + [index], lines)


@app.command("tree")
def tree_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved tree file."),
    header: Optional[bool] = _HEADER_OPTION,
) -> None:
    """Print the node structure with payload sizes."""

    with _opened_tree(path, _header_choice(ctx, header)) as root:
        lines: List[str] = []
        _render(root, [], lines)
        typer.echo("\n".join(lines))


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved tree file."),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table or json."),
    header: Optional[bool] = _HEADER_OPTION,
) -> None:
    """Summarize node counts, depth, and payload bytes."""

    try:
        output_format = resolve_format_flag(fmt)
    except ValueError as exc:
        _fail(str(exc))
    with _opened_tree(path, _header_choice(ctx, header)) as root:
        stats = root.stats().as_dict()
    if output_format == "json":
        typer.echo(json.dumps(stats, indent=2, sort_keys=True))
        return
    width = max(len(key) for key in stats)
    for key, value in stats.items():
        typer.echo(f"{key.ljust(width)}  {value}")


@app.command("cat")
def cat_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved tree file."),
    node: Optional[str] = typer.Option(None, "--node", "-n", help="Child index path such as 0/2."),
    as_hex: bool = typer.Option(False, "--hex", help="Print the payload as hexadecimal."),
    header: Optional[bool] = _HEADER_OPTION,
) -> None:
    """Write one node's payload to stdout."""

    try:
        indices = parse_node_path(node)
    except ValueError as exc:
        _fail(str(exc))
    with _opened_tree(path, _header_choice(ctx, header)) as root:
        try:
            target = resolve_node(root, indices)
            target.seek(0)
            payload = target.read()
        except PersistentTreeError as exc:
            _fail(str(exc))
    if as_hex:
        typer.echo(payload.hex())
    else:
        typer.echo(payload, nl=False)


@app.command("config")
def config_command() -> None:
    """Print the runtime configuration resolved from the environment."""

    try:
        runtime = cx_config.runtime_config()
    except ValueError as exc:
        _fail(str(exc))
    typer.echo(json.dumps(runtime.describe(), indent=2, sort_keys=True))


def main() -> None:
    app()


__all__ = ["app", "main"]
