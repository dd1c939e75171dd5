"""TaskHub CLI — account and session commands against a running backend.

Usage:
    taskhub register a@x.com "Ada" --password ...   # Create account (mails invitation)
    taskhub confirm-team <token> Acme               # Join or create team "Acme"
    taskhub login a@x.com --password ...            # Store a session locally
    taskhub whoami                                   # Show current user and team
    taskhub logout                                   # Revoke the stored session
    taskhub reset-request a@x.com                    # Mail a password reset link
    taskhub reset-password <token> --password ...    # Set a new password
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("TASKHUB_API_URL", DEFAULT_API_URL).rstrip("/")


def _credentials_path() -> Path:
    default = Path.home() / ".taskhub" / "credentials.json"
    return Path(os.environ.get("TASKHUB_CREDENTIALS_FILE", default))


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _save_session(data: dict) -> None:
    path = _credentials_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    path.chmod(0o600)


def _load_session() -> dict:
    path = _credentials_path()
    if not path.exists():
        click.secho("Not logged in. Run: taskhub login <email>", fg="red", err=True)
        sys.exit(1)
    return json.loads(path.read_text())


def _fail(r: httpx.Response) -> None:
    """Print the API error detail and exit non-zero."""
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


async def _post(path: str, body: dict, headers: dict | None = None) -> httpx.Response:
    async with _client() as c:
        return await c.post(path, json=body, headers=headers)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="taskhub")
def main():
    """TaskHub — accounts, sessions and team membership."""


@main.command()
@click.argument("email")
@click.argument("name")
@click.password_option()
def register(email: str, name: str, password: str):
    """Create an account. An invitation link is mailed to EMAIL."""
    r = asyncio.run(_post(
        "/api/v1/auth/register",
        {"email": email, "name": name, "password": password},
    ))
    if r.status_code != 201:
        _fail(r)
    click.secho(f"Registered {r.json()['email']}. Check your inbox for the invitation.", fg="green")


@main.command("confirm-team")
@click.argument("token")
@click.argument("team")
def confirm_team(token: str, team: str):
    """Join TEAM (created if it does not exist) with an invitation TOKEN."""
    r = asyncio.run(_post("/api/v1/auth/confirm-team", {"token": token, "team": team}))
    if r.status_code != 200:
        _fail(r)
    click.secho(f"Joined team {team}.", fg="green")


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Log in and store the session tokens locally."""
    r = asyncio.run(_post("/api/v1/auth/login", {"email": email, "password": password}))
    if r.status_code != 200:
        _fail(r)
    data = r.json()
    _save_session({
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
    })
    team = data["team"]["name"] if data.get("team") else "no team yet"
    click.secho(f"Logged in as {data['user']['email']} ({team}).", fg="green")


@main.command()
def logout():
    """Revoke the stored session and forget it."""
    session = _load_session()
    r = asyncio.run(_post("/api/v1/auth/logout", {"refresh_token": session["refresh_token"]}))
    if r.status_code != 204:
        _fail(r)
    _credentials_path().unlink(missing_ok=True)
    click.echo("Logged out.")


@main.command()
def whoami():
    """Show the current user."""
    session = _load_session()

    async def _me() -> httpx.Response:
        async with _client() as c:
            return await c.get(
                "/api/v1/auth/me",
                headers={"Authorization": f"Bearer {session['access_token']}"},
            )

    r = asyncio.run(_me())
    if r.status_code != 200:
        _fail(r)
    me = r.json()
    click.echo(f"{me['name']} <{me['email']}>  team: {me.get('team') or 'none'}")


@main.command("reset-request")
@click.argument("email")
def reset_request(email: str):
    """Mail a password reset link to EMAIL."""
    r = asyncio.run(_post("/api/v1/auth/password-reset/request", {"email": email}))
    if r.status_code != 202:
        _fail(r)
    click.echo("Reset link sent.")


@main.command("reset-password")
@click.argument("token")
@click.password_option()
def reset_password(token: str, password: str):
    """Set a new password using a reset TOKEN."""
    r = asyncio.run(_post(
        "/api/v1/auth/password-reset/confirm",
        {"token": token, "new_password": password},
    ))
    if r.status_code != 200:
        _fail(r)
    click.secho("Password updated. Log in again.", fg="green")


if __name__ == "__main__":
    main()
