#!/usr/bin/env python
"""
CLI management commands for the billing service.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import click

from reelstream.platform.db import create_all_tables_async, get_async_db
from reelstream.platform.logging import setup_logging


class AsyncSessionManager(Protocol):
    async def __aenter__(self) -> Any: ...  # pragma: no cover - protocol definition
    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> Any: ...  # pragma: no cover


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    session_factory: Callable[[], AsyncSessionManager]
    create_tables: Callable[[], Any]


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    return CLIDependencies(session_factory=get_async_db, create_tables=create_all_tables_async)


@click.group()
def cli() -> None:
    """Reelstream billing CLI."""
    setup_logging()


@cli.command()
def init_database() -> None:
    """Create the billing tables."""
    deps = _get_cli_dependencies()
    click.echo("Creating billing tables...")
    asyncio.run(deps.create_tables())
    click.echo("Database initialized successfully!")


@cli.command()
@click.argument("subscription_id")
@click.argument("user_id")
@click.argument("new_plan_id")
@click.option("--charge-immediately", is_flag=True, help="Finalize the invoice on generation")
@click.option("--request-id", default=None, help="Idempotency key for the change")
def change_plan(
    subscription_id: str,
    user_id: str,
    new_plan_id: str,
    charge_immediately: bool,
    request_id: str | None,
) -> None:
    """Change a subscription's plan and enqueue its invoice."""
    from reelstream.platform.billing.dependencies import build_plan_change_service
    from reelstream.platform.billing.plan_change.models import ChangePlanOptions

    deps = _get_cli_dependencies()

    async def _change() -> None:
        async with deps.session_factory() as session:
            service = build_plan_change_service(session)
            result = await service.change_plan(
                subscription_id,
                user_id,
                new_plan_id,
                ChangePlanOptions(charge_immediately=charge_immediately, request_id=request_id),
            )
            click.echo(f"Request {result.request_id}: {result.old_plan_id} -> {result.new_plan_id}")
            click.echo(f"Estimated charge: {result.estimated_charge}")
            click.echo(f"Invoice status: {result.invoice_status} (job {result.job_id})")

    asyncio.run(_change())


@cli.command()
@click.argument("request_id")
def plan_change_status(request_id: str) -> None:
    """Show the invoice status of a plan-change request."""
    from reelstream.platform.billing.dependencies import build_plan_change_service

    deps = _get_cli_dependencies()

    async def _status() -> None:
        async with deps.session_factory() as session:
            service = build_plan_change_service(session)
            status = await service.get_plan_change_status(request_id)
            click.echo(f"Status:  {status.status.value}")
            click.echo(f"Invoice: {status.invoice_id or '-'}")
            click.echo(f"Retries: {status.retry_count}")
            if status.error_message:
                click.echo(f"Error:   {status.error_message}")

    asyncio.run(_status())


@cli.command()
@click.argument("user_id")
@click.option("--currency", default="USD", help="Currency used for formatting")
def credit_balance(user_id: str, currency: str) -> None:
    """Show a user's available credit balance."""
    from reelstream.platform.billing.dependencies import build_credit_ledger
    from reelstream.platform.billing.money_utils import format_money

    deps = _get_cli_dependencies()

    async def _balance() -> None:
        async with deps.session_factory() as session:
            ledger = build_credit_ledger(session)
            credits = await ledger.get_available_credits(user_id)
            balance = sum((c.remaining_amount for c in credits), Decimal("0"))
            click.echo(f"{len(credits)} credits, balance {format_money(balance, currency)}")

    asyncio.run(_balance())


if __name__ == "__main__":
    cli()
