"""Command line interface for managing audiences and tokens."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from tokenauth import DefaultProvider, TokenAuth, load_config
from tokenauth.config import TokenAuthConfig
from tokenauth.errors import (
    ConfigurationError,
    RegistryError,
    StoreError,
    TokenExpiredError,
    TokenNotFoundError,
    ValidationError,
)
from tokenauth.models import Token

app = typer.Typer(help="CLI for tokenauth stores")

# Command groups
audience_app = typer.Typer(help="Commands for managing audiences")
token_app = typer.Typer(help="Commands for issuing and checking tokens")

app.add_typer(audience_app, name="audience")
app.add_typer(token_app, name="token")

T = TypeVar("T")

_provider = DefaultProvider()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to a tokenauth YAML config file"
    ),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """tokenauth CLI entry point."""
    logging.basicConfig(level=log_level.upper())
    try:
        ctx.obj = load_config(config)
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _run(ctx: typer.Context, action: Callable[[TokenAuth], Awaitable[T]]) -> T:
    """Open the configured store, run ``action`` and close the store."""
    config: TokenAuthConfig = ctx.obj

    async def runner() -> T:
        auth = await TokenAuth.from_config(config)
        try:
            return await action(auth)
        finally:
            await auth.close()

    try:
        return asyncio.run(runner())
    except (
        ConfigurationError,
        RegistryError,
        StoreError,
        sqlite3.Error,
        OSError,
    ) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _format_deadline(token: Token) -> str:
    if token.deadline == 0:
        return "never"
    return datetime.fromtimestamp(token.deadline, tz=timezone.utc).isoformat()


@audience_app.command("create")
def audience_create(
    ctx: typer.Context,
    name: str,
    period: Optional[int] = typer.Option(
        None, min=0, help="Token lifetime in seconds, 0 for tokens that never expire"
    ),
) -> None:
    """
    Create an audience with a generated id and secret.

    Example:
        tokenauth audience create billing --period 3600
        # Output: Audience 3f2b...: billing
        #         Secret: Zx81...
    """

    async def action(auth: TokenAuth):
        if period is not None:
            auth.token_period = period
        return await auth.new_audience(name, _provider.generate_secret_string)

    audience = _run(ctx, action)
    typer.echo(f"Audience {audience.id}: {audience.name}")
    typer.echo(f"Secret: {audience.secret}")
    typer.echo(f"Token period: {audience.token_period}s")


@audience_app.command("show")
def audience_show(ctx: typer.Context, audience_id: str) -> None:
    """Show an audience and the number of tokens issued against it."""

    async def action(auth: TokenAuth):
        audience = await auth.store.get_audience(audience_id)
        tokens = await auth.store.list_tokens(audience_id) if audience else []
        return audience, tokens

    audience, tokens = _run(ctx, action)
    if audience is None:
        typer.echo("Audience not found")
        raise typer.Exit(code=1)
    typer.echo(f"Audience {audience.id}: {audience.name}")
    typer.echo(f"Token period: {audience.token_period}s")
    typer.echo(f"Tokens: {len(tokens)}")


@audience_app.command("delete")
def audience_delete(ctx: typer.Context, audience_id: str) -> None:
    """Delete an audience and every token issued against it."""
    _run(ctx, lambda auth: auth.store.delete_audience(audience_id))
    typer.echo(f"Deleted audience {audience_id}")


@audience_app.command("rotate")
def audience_rotate(ctx: typer.Context, audience_id: str) -> None:
    """
    Give an audience a new secret.

    Re-saving the audience revokes all of its existing tokens.
    """

    async def action(auth: TokenAuth):
        audience = await auth.store.get_audience(audience_id)
        if audience is None:
            return None
        return await auth.rotate_secret(audience, _provider.generate_secret_string)

    audience = _run(ctx, action)
    if audience is None:
        typer.echo("Audience not found")
        raise typer.Exit(code=1)
    typer.echo(f"Secret: {audience.secret}")


@audience_app.command("tokens")
def audience_tokens(ctx: typer.Context, audience_id: str) -> None:
    """List the tokens issued against an audience with their deadlines."""
    tokens = _run(ctx, lambda auth: auth.store.list_tokens(audience_id))
    if not tokens:
        typer.echo("No tokens found")
        return
    for token in tokens:
        typer.echo(f"{token.value}\t{_format_deadline(token)}")


@token_app.command("issue")
def token_issue(
    ctx: typer.Context,
    audience_id: str,
    single_id: Optional[str] = typer.Option(
        None, help="Issue a single-slot token, replacing any previous one for this id"
    ),
) -> None:
    """
    Issue a token for an audience.

    Example:
        tokenauth token issue 3f2b...
        tokenauth token issue 3f2b... --single-id device-42
    """

    async def action(auth: TokenAuth):
        audience = await auth.store.get_audience(audience_id)
        if audience is None:
            return None
        if single_id:
            return await auth.new_single_token(
                single_id, audience, _provider.generate_token_string
            )
        return await auth.new_token(audience, _provider.generate_token_string)

    token = _run(ctx, action)
    if token is None:
        typer.echo("Audience not found")
        raise typer.Exit(code=1)
    typer.echo(token.value)
    typer.echo(f"Expires: {_format_deadline(token)}")


@token_app.command("validate")
def token_validate(ctx: typer.Context, value: str) -> None:
    """Check a token; expired tokens are deleted and reported."""

    async def action(auth: TokenAuth):
        try:
            return await auth.validate_token(value), None
        except ValidationError as exc:
            return None, exc

    token, error = _run(ctx, action)
    if error is not None:
        typer.secho(str(error), fg=typer.colors.RED)
        if isinstance(error, TokenExpiredError) and error.token is not None:
            typer.echo(f"Expired: {_format_deadline(error.token)}")
        raise typer.Exit(code=1)
    owner = token.client_id or f"single:{token.single_id}"
    typer.echo(f"Valid token for {owner}, expires: {_format_deadline(token)}")


@token_app.command("revoke")
def token_revoke(ctx: typer.Context, value: str) -> None:
    """Delete a token."""

    async def action(auth: TokenAuth):
        try:
            await auth.store.delete_token(value)
        except TokenNotFoundError:
            return False
        return True

    if not _run(ctx, action):
        typer.echo("Token not found")
        raise typer.Exit(code=1)
    typer.echo("Token revoked")


@app.command("sweep")
def sweep(ctx: typer.Context) -> None:
    """Delete every expired token now instead of waiting for the janitor."""
    removed = _run(ctx, lambda auth: auth.store.delete_expired())
    typer.echo(f"Removed {removed} expired tokens")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
