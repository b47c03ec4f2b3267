from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Iterator
from pathlib import Path

import typer
from rich import print
from rich.markup import escape

from . import __version__, mutations
from .backup import BACKUP_FILENAME, read_backup, write_backup
from .client import Client, boot, open_client
from .config import (
    coerce_config_value,
    get_config_path,
    load_config,
    read_config_file,
    write_config_file,
)
from .errors import NotAuthenticated, Unreachable, ValidationError
from .models import CODE_TYPES, Dataset
from .reconcile import LoadOutcome, SaveOutcome
from .server import lan_addresses, serve

app = typer.Typer(help="shrink-rules: shared shrink prevention rules")
config_app = typer.Typer(help="Inspect configuration")
app.add_typer(config_app, name="config")

_PASSWORD_OPTION = typer.Option(
    None,
    "--password",
    envvar="SHRINK_RULES_PASSWORD",
    help="Admin password, used when no admin session is stored",
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@contextlib.contextmanager
def _client() -> Iterator[Client]:
    try:
        client = open_client(load_config())
    except ValueError as exc:
        print(f"[red]Invalid configuration: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None
    try:
        outcome = boot(client)
        if outcome == LoadOutcome.REMOTE_FAILED:
            print("[yellow]Server unreachable; showing the local copy.[/yellow]")
        yield client
    finally:
        client.close()


def _ensure_admin(client: Client, password: str | None) -> None:
    if client.session.authenticated:
        return
    if not password:
        print("[red]Admin login required (run `shrink-rules login` or pass --password).[/red]")
        raise typer.Exit(code=1)
    try:
        ok = client.session.login(password)
    except Unreachable:
        print("[red]Cannot reach the server. Try again.[/red]")
        raise typer.Exit(code=1) from None
    if not ok:
        print("[red]Incorrect password.[/red]")
        raise typer.Exit(code=1)


def _read_text(text: str | None, file: Path | None) -> str:
    if file is not None:
        return file.expanduser().read_text()
    return text or ""


def _report(client: Client, outcome: SaveOutcome, message: str) -> None:
    print(f"[green]{escape(message)}[/green]")
    for notice in client.state.drain_notices():
        color = "yellow" if notice.level == "warn" else "red"
        print(f"[{color}]{escape(notice.text)}[/{color}]")
    if outcome == SaveOutcome.SESSION_EXPIRED:
        raise typer.Exit(code=2)


def _run_mutation(client: Client, mutation, message: str) -> None:
    try:
        outcome = client.engine.apply(mutation)
    except ValidationError as exc:
        print(f"[yellow]{escape(str(exc))}[/yellow]")
        raise typer.Exit(code=1) from None
    except NotAuthenticated as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None
    _report(client, outcome, message)


def _print_rules(dataset: Dataset, search: str | None) -> None:
    matches = mutations.filter_rules(dataset, search or "")
    if not matches:
        print("[dim]No rules available[/dim]")
        return
    for idx, rule in matches:
        print(f"[bold]{idx + 1:>3}.[/bold] {escape(rule)}")


@app.command()
def version() -> None:
    """Print the installed version."""

    print(__version__)


@app.command("serve")
def serve_cmd(
    host: str = typer.Option(None, help="Interface to bind"),
    port: int = typer.Option(None, help="Port to listen on"),
    data_file: str = typer.Option(None, help="Path of the shared JSON document"),
    public_dir: str = typer.Option(None, help="Directory of static site files"),
) -> None:
    """Run the shared state server."""

    config = load_config()
    if host:
        config.host = host
    if port:
        config.port = port
    if data_file:
        config.data_file = data_file
    if public_dir:
        config.public_dir = public_dir
    print("[bold]Shrink Prevention server running:[/bold]")
    print(f"  Local:   http://localhost:{config.port}")
    addresses = lan_addresses()
    if addresses:
        print("  LAN:     " + "  ".join(f"http://{ip}:{config.port}" for ip in addresses))
    else:
        print("  LAN:     (no external LAN IP detected)")
    print(f"Shared data file: {Path(config.data_file).expanduser()}")
    serve(config)


@app.command()
def status() -> None:
    """Show connectivity, session and dataset counts."""

    with _client() as client:
        state = client.state
        print(f"Connectivity: {state.connectivity.value}")
        print(f"Admin session: {'yes' if client.session.authenticated else 'no'}")
        print(f"Last sync: {state.last_sync or '-'}")
        print(
            f"Rules: {len(state.dataset.rules)}  "
            f"Reason codes: {len(state.dataset.reason_codes)}  "
            f"Loss codes: {len(state.dataset.loss_codes)}"
        )


@app.command()
def show(
    search: str = typer.Option(None, "--search", "-s", help="Filter rules by text"),
    codes: str = typer.Option(None, help="Show reason or loss codes instead of rules"),
) -> None:
    """List rules (or codes)."""

    with _client() as client:
        dataset = client.state.dataset
        if codes is None:
            _print_rules(dataset, search)
            return
        if codes not in CODE_TYPES:
            print(f"[red]Unknown code type: {escape(codes)}[/red]")
            raise typer.Exit(code=1)
        listed = dataset.codes(codes)  # type: ignore[arg-type]
        if not listed:
            print("[dim]No codes available[/dim]")
        for idx, code in enumerate(listed, start=1):
            print(f"[bold]{idx:>3}.[/bold] {escape(code.number)}. {escape(code.title)}")
            if code.definition:
                print(f"       [dim]{escape(code.definition)}[/dim]")


@app.command()
def login(
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Admin password"),
) -> None:
    """Start an admin session."""

    with _client() as client:
        try:
            ok = client.session.login(password)
        except Unreachable:
            print("[red]Cannot reach the server. Try again.[/red]")
            raise typer.Exit(code=1) from None
        if not ok:
            print("[red]Incorrect password.[/red]")
            raise typer.Exit(code=1)
        if client.remote is None:
            print(
                "[yellow]No server configured; admin access lasts for this command only.[/yellow]"
            )
        else:
            print("[green]Admin access enabled.[/green]")


@app.command()
def logout() -> None:
    """End the admin session."""

    with _client() as client:
        client.session.logout()
        print("Logged out.")


@app.command("add-rules")
def add_rules_cmd(
    text: str = typer.Argument(None, help="Rules, one per line"),
    file: Path = typer.Option(None, "--file", "-f", help="Read rules from a file"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Append rules, skipping ones that already exist."""

    raw = _read_text(text, file)
    with _client() as client:
        _ensure_admin(client, password)
        added: list[int] = []

        def _mutation(dataset: Dataset) -> Dataset:
            updated, count = mutations.add_rules(dataset, raw)
            added.append(count)
            return updated

        try:
            outcome = client.engine.apply(_mutation)
        except ValidationError as exc:
            print(f"[yellow]{escape(str(exc))}[/yellow]")
            raise typer.Exit(code=1) from None
        _report(client, outcome, f"Added {added[0]} rule(s).")


@app.command("replace-rules")
def replace_rules_cmd(
    text: str = typer.Argument(None, help="Rules, one per line"),
    file: Path = typer.Option(None, "--file", "-f", help="Read rules from a file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm replacing every rule"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Overwrite the entire rules list."""

    if not yes:
        yes = typer.confirm("This will overwrite your entire rules list. Continue?")
        if not yes:
            print("Cancelled.")
            raise typer.Exit(code=1)
    raw = _read_text(text, file)
    with _client() as client:
        _ensure_admin(client, password)
        _run_mutation(
            client,
            lambda dataset: mutations.replace_all_rules(dataset, raw, confirm=yes),
            "Replaced all rules.",
        )


@app.command("edit-rule")
def edit_rule_cmd(
    number: int = typer.Argument(..., help="Rule number as shown by `show` (1-based)"),
    text: str = typer.Argument(..., help="New rule text"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Replace the text of one rule."""

    with _client() as client:
        _ensure_admin(client, password)
        _run_mutation(
            client,
            lambda dataset: mutations.edit_rule(dataset, number - 1, text),
            f"Updated rule #{number}.",
        )


@app.command("delete-rule")
def delete_rule_cmd(
    number: int = typer.Argument(..., help="Rule number as shown by `show` (1-based)"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Delete one rule."""

    with _client() as client:
        _ensure_admin(client, password)
        _run_mutation(
            client,
            lambda dataset: mutations.delete_rule(dataset, number - 1),
            f"Deleted rule #{number}.",
        )


@app.command("add-codes")
def add_codes_cmd(
    code_type: str = typer.Argument(..., help="reason or loss"),
    text: str = typer.Argument(None, help="Numbered code list"),
    file: Path = typer.Option(None, "--file", "-f", help="Read codes from a file"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Append numbered codes ("1. Title" followed by definition lines)."""

    raw = _read_text(text, file)
    with _client() as client:
        _ensure_admin(client, password)
        _run_mutation(
            client,
            lambda dataset: mutations.add_codes(dataset, code_type, raw)[0],
            "Codes saved.",
        )


@app.command("delete-code")
def delete_code_cmd(
    code_type: str = typer.Argument(..., help="reason or loss"),
    number: int = typer.Argument(..., help="Position as shown by `show --codes` (1-based)"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Delete one code."""

    with _client() as client:
        _ensure_admin(client, password)
        _run_mutation(
            client,
            lambda dataset: mutations.delete_code(dataset, code_type, number - 1),
            "Code deleted.",
        )


@app.command("export")
def export_cmd(
    output: Path = typer.Option(Path(BACKUP_FILENAME), "--output", "-o", help="Backup file"),
) -> None:
    """Write a full backup of rules and codes."""

    with _client() as client:
        path = write_backup(client.state.dataset, output)
        print(f"[green]Exported to {escape(str(path))}[/green]")


@app.command("import")
def import_cmd(
    path: Path = typer.Argument(..., help="Backup file produced by `export`"),
    password: str = _PASSWORD_OPTION,
) -> None:
    """Replace everything with the contents of a backup file."""

    try:
        imported = read_backup(path)
    except ValidationError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None
    with _client() as client:
        _ensure_admin(client, password)
        _run_mutation(client, lambda _dataset: imported, "Import complete.")


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""

    config = load_config()
    print(f"[dim]{escape(str(get_config_path()))}[/dim]")
    print(escape(json.dumps(config.to_dict(), indent=2)))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. remote_url"),
    value: str = typer.Argument("", help="New value; empty removes the key"),
) -> None:
    """Update one key in the config file."""

    config_path = get_config_path()
    try:
        config_data = read_config_file(config_path)
        coerced = coerce_config_value(key, value)
    except ValueError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None
    if coerced is None:
        config_data.pop(key, None)
    else:
        config_data[key] = coerced
    write_config_file(config_data, config_path)
    print(f"[green]Saved {escape(str(config_path))}[/green]")
