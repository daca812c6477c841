import json
import socket
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import httpx
import psutil
import typer
import uvicorn

from pwaccounts.batch.codec import render_script
from pwaccounts.batch.locator import locate_executable, require_executable
from pwaccounts.batch.scanner import DirectoryScanner
from pwaccounts.batch.writer import create_permanent_script, write_script
from pwaccounts.errors import ConfigurationError
from pwaccounts.paths import data_dir, log_dir, pid_file_path
from pwaccounts.supervisor.models import Account
from pwaccounts.supervisor.settings_config import load_settings

app = typer.Typer()

SERVER_HOST = "127.0.0.1"
SERVER_PORT = 7788
SERVER_URL = f"http://{SERVER_HOST}:{SERVER_PORT}"
APP_FACTORY = "pwaccounts.supervisor.app:build_app"


def ensure_dirs():
    data_dir().mkdir(parents=True, exist_ok=True)
    log_dir().mkdir(parents=True, exist_ok=True)


def is_port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((SERVER_HOST, port)) == 0


def pid_exists(pid: int) -> bool:
    try:
        return psutil.pid_exists(pid)
    except psutil.Error:
        return False


def _resolve_root(root: Optional[str]) -> Optional[str]:
    return root or load_settings().get("game_path") or None


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


@app.command()
def start():
    """Start the launcher host in the background."""
    ensure_dirs()
    pid_file = pid_file_path()

    if pid_file.exists():
        try:
            pid = int(pid_file.read_text())
        except ValueError:
            pid = 0
        if pid and pid_exists(pid):
            typer.echo(f"Launcher host already running (PID: {pid})")
            return
        typer.echo("Stale PID file found. Removing...")
        pid_file.unlink(missing_ok=True)

    if is_port_in_use(SERVER_PORT):
        _fail(f"Port {SERVER_PORT} is already in use by another process.")

    typer.echo("Starting launcher host...")
    cmd = [
        sys.executable, "-m", "uvicorn", APP_FACTORY, "--factory",
        "--host", SERVER_HOST,
        "--port", str(SERVER_PORT),
    ]

    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    with open(log_dir() / "host-stdout.log", "a") as log_file:
        process = subprocess.Popen(cmd, stdout=log_file, stderr=log_file, **kwargs)

    pid_file.write_text(str(process.pid))
    typer.echo(f"Launcher host started (PID: {process.pid})")


@app.command()
def stop():
    """Stop the launcher host; running game clients are left alone."""
    pid_file = pid_file_path()
    if not pid_file.exists():
        typer.echo("Launcher host not running (no PID file)")
        return

    pid = int(pid_file.read_text() or 0)
    try:
        typer.echo("Attempting graceful shutdown...")
        response = httpx.post(f"{SERVER_URL}/shutdown", timeout=5.0)
        if response.status_code == 200:
            typer.echo(f"Launcher host shutting down (PID: {pid})...")
            pid_file.unlink(missing_ok=True)
            return
    except (httpx.ConnectError, httpx.TimeoutException):
        typer.echo("Graceful shutdown failed (API unreachable).")

    typer.echo(f"Forcing stop (PID: {pid})...")
    try:
        psutil.Process(pid).terminate()
        typer.echo("Launcher host stopped.")
    except psutil.NoSuchProcess:
        typer.echo("Launcher host process not found. Cleaning up PID file.")
    except psutil.AccessDenied as exc:
        typer.echo(f"Failed to stop launcher host: {exc}")
        return
    pid_file.unlink(missing_ok=True)


@app.command()
def status():
    """Check launcher host status."""
    if not pid_file_path().exists():
        typer.echo("Launcher host: STOPPED")
        return

    try:
        response = httpx.get(f"{SERVER_URL}/health")
        if response.status_code == 200:
            typer.echo("Launcher host: RUNNING")
            typer.echo(f"Running accounts: {response.json().get('running_accounts', 0)}")
        else:
            typer.echo("Launcher host: UNHEALTHY (API not responding correctly)")
    except httpx.ConnectError:
        typer.echo("Launcher host: NOT RESPONDING (Connection refused)")


@app.command()
def serve(host: str = SERVER_HOST, port: int = SERVER_PORT):
    """Run the launcher host in the foreground."""
    ensure_dirs()
    uvicorn.run(APP_FACTORY, factory=True, host=host, port=port)


@app.command()
def locate(root: Optional[str] = typer.Argument(None, help="Game folder; defaults to settings")):
    """Print the game client executable found under the game folder."""
    root_dir = _resolve_root(root)
    if not root_dir:
        _fail("no game folder given and none configured")
    executable = locate_executable(root_dir)
    if executable is None:
        typer.echo(f"NOT FOUND: no elementclient.exe in {root_dir} or its element subfolder")
        raise typer.Exit(code=1)
    typer.echo(str(executable))


@app.command()
def scan(
    root: str = typer.Argument(..., help="Folder to search for launcher scripts"),
    as_json: bool = typer.Option(False, "--json", help="Print candidates as JSON"),
    save: bool = typer.Option(False, "--import", help="Import candidates through the running host"),
):
    """List accounts recovered from existing .bat launcher scripts."""
    candidates = DirectoryScanner().scan(root)
    if as_json:
        typer.echo(json.dumps([c.model_dump(mode="json") for c in candidates], indent=2, ensure_ascii=False))
    else:
        typer.echo(f"Found {len(candidates)} account(s) in {root}")
        for candidate in candidates:
            character = f" [{candidate.character_name}]" if candidate.character_name else ""
            typer.echo(f" - {candidate.login} ({candidate.server.value}){character} <- {candidate.source_path}")

    if save and candidates:
        try:
            response = httpx.post(
                f"{SERVER_URL}/accounts/import",
                json={"candidates": [c.model_dump(mode="json") for c in candidates]},
                timeout=30.0,
            )
        except httpx.ConnectError:
            _fail("launcher host is not running")
        if response.status_code != 200:
            _fail(f"import failed: {response.text}")
        result = response.json()
        typer.echo(f"Imported {len(result['saved'])}, skipped {len(result['skipped'])} existing")


@app.command("make-script")
def make_script(
    login: str,
    password: str,
    server: str = typer.Option("Main", help="Server tag (Main or X)"),
    character: Optional[str] = typer.Option(None, help="Character name for role:"),
    root: Optional[str] = typer.Option(None, help="Game folder; defaults to settings"),
    output: Optional[Path] = typer.Option(None, help="Write here instead of pw_<login>.bat"),
    embed_character: bool = typer.Option(False, help="Fill role: with the character name"),
):
    """Write a launcher script for one account."""
    try:
        account = Account(login=login, password=password, server=server, character_name=character)
    except ValueError as exc:
        _fail(str(exc))
    root_dir = _resolve_root(root)
    try:
        if output is not None:
            executable = require_executable(root_dir)
            path = write_script(
                output, render_script(account, executable, embed_character_name=embed_character)
            )
        else:
            path = create_permanent_script(account, root_dir, embed_character_name=embed_character)
    except ConfigurationError as exc:
        _fail(str(exc))
    typer.echo(f"Wrote {path}")


@app.command()
def launch(
    account_ids: List[str],
    delay: Optional[float] = typer.Option(None, help="Seconds between launches"),
    root: Optional[str] = typer.Option(None, help="Game folder; defaults to settings"),
):
    """Launch stored accounts through the running host."""
    payload = {"account_ids": account_ids, "root_dir": root, "delay_seconds": delay}
    try:
        response = httpx.post(f"{SERVER_URL}/launch", json=payload, timeout=None)
    except httpx.ConnectError:
        _fail("launcher host is not running")
    if response.status_code != 200:
        _fail(f"launch failed: {response.text}")
    for outcome in response.json():
        if outcome["success"]:
            typer.echo(f" - {outcome['account_id']}: started (PID {outcome['pid']})")
        else:
            error = outcome.get("error") or {}
            typer.echo(
                f" - {outcome['account_id']}: FAILED {error.get('error_code', 'UNKNOWN')} "
                f"{error.get('message', '')}"
            )


@app.command()
def close(account_ids: List[str]):
    """Close running game clients for the given accounts."""
    try:
        response = httpx.post(f"{SERVER_URL}/close", json={"account_ids": account_ids}, timeout=30.0)
    except httpx.ConnectError:
        _fail("launcher host is not running")
    if response.status_code != 200:
        _fail(f"close failed: {response.text}")
    closed = response.json()["closed"]
    typer.echo(f"Closed {len(closed)} of {len(account_ids)} account(s)")


@app.command()
def ps():
    """List game clients tracked by the running host."""
    try:
        response = httpx.get(f"{SERVER_URL}/processes", timeout=10.0)
    except httpx.ConnectError:
        _fail("launcher host is not running")
    records = response.json()
    if not records:
        typer.echo("No running accounts.")
        return
    for record in records:
        typer.echo(f" - {record['login']} ({record['account_id']}) PID {record['pid']} [{record['state']}]")


if __name__ == "__main__":
    app()
