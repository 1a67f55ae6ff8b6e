from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from ..core.environment import Environment
from ..core.exceptions import StrataError
from ..core.ordinal import ordinal_of
from ..core.types import BOOL, BYTE, DECIMAL, DOUBLE, FLOAT, INT, LONG, SHORT, STRING, list_of

app = typer.Typer(help="Strata configuration CLI")

TYPES = {
    "string": STRING,
    "bool": BOOL,
    "byte": BYTE,
    "short": SHORT,
    "int": INT,
    "long": LONG,
    "float": FLOAT,
    "double": DOUBLE,
    "decimal": DECIMAL,
    "list": list_of(STRING),
}

ENV_OPTION = typer.Option("development", "--env", help="Environment in strata.yaml")
CONFIG_OPTION = typer.Option(None, "--config", help="Path to strata.yaml")


def _env(name: str, config: Optional[Path]) -> Environment:
    try:
        return Environment(name, config_path=config)
    except StrataError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command()
def sources(env: str = ENV_OPTION, config: Optional[Path] = CONFIG_OPTION):
    """List property sources, highest priority first."""
    ctx = _env(env, config).context()
    _echo_json([
        {
            "name": s.name,
            "type": type(s).__name__,
            "ordinal": ordinal_of(s, ctx.ordinal_key),
            "scannable": s.is_scannable(),
            "writable": bool(getattr(s, "writable", False)),
        }
        for s in ctx.property_sources
    ])


@app.command()
def get(
    key: str,
    type_name: str = typer.Option("string", "--type", help="One of: " + ", ".join(TYPES)),
    env: str = ENV_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
):
    """Resolve one key, with the source it came from."""
    if type_name not in TYPES:
        typer.echo(f"Error: unknown type {type_name!r}", err=True)
        raise typer.Exit(code=2)
    ctx = _env(env, config).context()
    entry = ctx.get_entry(key)
    try:
        value = ctx.get_typed(key, TYPES[type_name])
    except StrataError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    if isinstance(value, (set, tuple)):
        value = list(value)
    _echo_json({"key": key, "value": value, "source": entry.source if entry else None})


@app.command()
def dump(env: str = ENV_OPTION, config: Optional[Path] = CONFIG_OPTION):
    """Print every resolved key and value."""
    _echo_json(_env(env, config).context().get_all())


@app.command()
def describe(env: str = ENV_OPTION, config: Optional[Path] = CONFIG_OPTION):
    """Print sources, filters, converters and the combination policy."""
    typer.echo(_env(env, config).context().describe())


@app.command("set")
def set_value(
    key: str,
    value: str,
    env: str = ENV_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    save: bool = typer.Option(False, "--save", help="Store the change"),
):
    """Stage (and with --save, store) a value."""
    mutable = _env(env, config).mutable()
    try:
        mutable.put(key, value)
        if save:
            result = mutable.store()
            _echo_json({"transaction": result.transaction_id, "applied": list(result.applied)})
            return
    except StrataError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Staged (use --save to store)")


@app.command()
def remove(
    key: str,
    env: str = ENV_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    save: bool = typer.Option(False, "--save", help="Store the change"),
):
    """Stage (and with --save, store) the removal of a key."""
    mutable = _env(env, config).mutable()
    try:
        mutable.remove(key)
        if save:
            result = mutable.store()
            _echo_json({"transaction": result.transaction_id, "applied": list(result.applied)})
            return
    except StrataError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Staged (use --save to store)")


if __name__ == "__main__":
    app()
