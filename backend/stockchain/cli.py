# Overview: Flask CLI command groups for ledger inspection and maintenance.

# backend/stockchain/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Stock maintenance:
# - python -m flask stock chains
#   List chain profiles (storage prefix, request collection, pricing, roles).
# - python -m flask stock recalculate --chain distributor --owner dist-1
#   Repair entries, then rebuild the owner's summaries from them.
# - python -m flask stock drift --chain distributor --owner dist-1
#   Report summaries that disagree with their entries (read-only).
# - python -m flask stock consolidate --chain direct_rep --owner rep-7
#   Merge duplicate batches per product into the oldest one.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .chains import CHAIN_PROFILES
from .errors import StockChainError
from .extensions import db
from .services import summary_service


def _chain_option(f):
    return click.option(
        '--chain',
        required=True,
        type=click.Choice(sorted(CHAIN_PROFILES)),
        help='Chain code',
    )(f)


@click.group('stock')
def stock_group():
    """Stock ledger inspection and maintenance commands."""


@stock_group.command('chains')
def list_chains():
    """List chain profiles."""
    for profile in CHAIN_PROFILES.values():
        requests_at = profile.request_collection or '-'
        supplier = profile.supplier_chain or '-'
        pricing = 'priced' if profile.tracks_pricing else 'unpriced'
        click.echo(
            f"{profile.code:<16} {profile.stock_prefix:<17} requests={requests_at:<16} "
            f"supplier={supplier:<12} {pricing}"
        )


@stock_group.command('recalculate')
@_chain_option
@click.option('--owner', 'owner_id', required=True, help='Ledger owner id')
@with_appcontext
def recalculate_cli(chain, owner_id):
    """Repair entries and rebuild summaries for one owner."""
    try:
        result = summary_service.recalculate(chain=chain, owner_id=owner_id)
    except StockChainError as e:
        raise click.ClickException(str(e))

    for fix in result['fixed_entries']:
        click.echo(
            f"FIXED   entry {fix['entry_id']} ({fix['product_id']}): "
            f"available {fix['available_before']} -> {fix['available_after']}"
        )
    for summary in result['summaries']:
        click.echo(
            f"OK      {summary['product_id']}: total={summary['total_quantity']} "
            f"available={summary['available_quantity']} used={summary['used_quantity']} "
            f"entries={summary['entry_count']}"
        )
    for product_id in result['removed_summaries']:
        click.echo(f"REMOVED {product_id}: summary had no entries")
    click.echo(f"Recalculated {len(result['summaries'])} summaries for {chain}/{owner_id}")


@stock_group.command('drift')
@_chain_option
@click.option('--owner', 'owner_id', required=True, help='Ledger owner id')
@with_appcontext
def drift_cli(chain, owner_id):
    """Report summaries that disagree with their entries."""
    report = summary_service.detect_drift(chain=chain, owner_id=owner_id)
    if not report:
        click.echo(f"No drift for {chain}/{owner_id}")
        return

    for row in report:
        if row['issue'] != 'mismatch':
            click.echo(f"DRIFT   {row['product_id']}: {row['issue']}")
            continue
        fields = ", ".join(
            f"{name} cached={diff['cached']} actual={diff['actual']}"
            for name, diff in row['fields'].items()
        )
        click.echo(f"DRIFT   {row['product_id']}: {fields}")
    click.echo(f"{len(report)} product(s) drifted; run `flask stock recalculate` to rebuild")


@stock_group.command('consolidate')
@_chain_option
@click.option('--owner', 'owner_id', required=True, help='Ledger owner id')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def consolidate_cli(chain, owner_id, yes):
    """Merge duplicate batches per product into the oldest batch."""
    if not yes:
        click.confirm(f"Merge duplicate batches for {chain}/{owner_id}?", abort=True)
    try:
        merged = summary_service.consolidate_entries(chain=chain, owner_id=owner_id)
    except StockChainError as e:
        raise click.ClickException(str(e))

    for row in merged:
        click.echo(
            f"MERGED  {row['product_id']}: {len(row['merged_entry_ids'])} batch(es) "
            f"into entry {row['kept_entry_id']} (quantity {row['quantity']})"
        )
    click.echo(f"Consolidated {len(merged)} product(s)")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("CREATE  Creating schema...")
    db.create_all()
    click.echo("OK      Database reset")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
    app.cli.add_command(system_group)
