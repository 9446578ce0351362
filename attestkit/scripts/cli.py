"""CLI commands for attestation orders and the outbox.

Usage:
    flask attestations create-order --provider default --data username=alice --data userId=42
    flask attestations handle-message DEVICE "I own the address: ..."
    flask outbox dispatch --once
"""

from __future__ import annotations

import json

import click
from flask import current_app
from flask.cli import AppGroup

from attestkit.domains.attestations import services
from attestkit.domains.attestations.errors import AttestationError
from attestkit.domains.attestations.mappers import map_order

attestations_cli = AppGroup("attestations", help="Manage attestation orders.")
outbox_cli = AppGroup("outbox", help="Outbox dispatcher commands.")


def _parse_pairs(pairs) -> dict:
    data = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--data")
        data[key] = value
    return data


@attestations_cli.command("create-order")
@click.option("--provider", "-p", default=None, help="Service provider (defaults to SERVICE_PROVIDER)")
@click.option("--data", "-d", "pairs", multiple=True, required=True, help="Attribute as key=value")
@click.option("--address", "-a", default=None, help="Wallet address to bind on creation")
@click.option("--allow-duplicates/--no-allow-duplicates", default=None)
def create_order_command(provider, pairs, address, allow_duplicates):
    """Create (or reuse) an attestation order."""
    if provider is None:
        provider = current_app.config.get("SERVICE_PROVIDER")
    if allow_duplicates is None:
        allow_duplicates = current_app.config.get("ALLOW_DUPLICATE_ORDERS", True)
    store = services.order_store()
    try:
        order_id = store.create_order(
            provider,
            _parse_pairs(pairs),
            address=address,
            allow_duplicates=allow_duplicates,
        )
    except AttestationError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}") from exc
    click.echo(json.dumps(map_order(store.get(order_id)), indent=2))


@attestations_cli.command("handle-message")
@click.argument("device_address")
@click.argument("text")
def handle_message_command(device_address, text):
    """Feed one inbound device message through the router and print the reply."""
    reply = services.message_router().handle(device_address, text)
    click.echo(json.dumps(reply.as_dict(), indent=2))
    if not reply.ok:
        raise SystemExit(1)


@outbox_cli.command("dispatch")
@click.option("--once", is_flag=True, help="Process one batch and exit")
def dispatch_command(once):
    """Deliver staged outbox events to bus subscribers."""
    from attestkit.platform.worker import DispatchConfig, run_dispatcher

    total = run_dispatcher(DispatchConfig.from_mapping(current_app.config), once=once)
    click.echo(f"Dispatched {total} message(s)")


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(attestations_cli)
    app.cli.add_command(outbox_cli)
