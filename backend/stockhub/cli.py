# Overview: Flask CLI command group for inventory inspection and maintenance.

# backend/stockhub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask inventory <command> [options]
#
# Hierarchy:
# - python -m flask inventory check-hierarchy
#   List main products whose quantity differs from the sum of their store variants.
# - python -m flask inventory reconcile [--dry-run]
#   Recompute those main products from their variants ("Reconciliation" movement).
#
# Alerts:
# - python -m flask inventory evaluate-alerts
#   Evaluate low-stock and expiry alerts for every live product.
# - python -m flask inventory review-low-stock
#   Resolve pending low-stock alerts whose product is back above its reorder level.
#
# Mirror:
# - python -m flask inventory init-mirror
#   Create the mirror_documents table on the "mirror" bind (not managed by Alembic).
# - python -m flask inventory drain-mirror [--requeue-failed]
#   Deliver pending mirror outbox rows; optionally give failed rows another round.

import click
from flask.cli import with_appcontext

from .actor import Actor
from .extensions import db
from .models import Product
from .services import alert_service, inventory_service, mirror_service


def _live_products():
    return (
        db.session.query(Product)
        .filter(Product.active.is_(True), Product.deleted_at.is_(None))
        .order_by(Product.id.asc())
        .all()
    )


@click.group('inventory')
def inventory_group():
    """Inventory hierarchy, alert and mirror maintenance commands."""


@inventory_group.command('check-hierarchy')
@with_appcontext
def check_hierarchy_cli():
    """Report main products out of sync with their store variants."""
    mismatches = inventory_service.check_hierarchy()
    if not mismatches:
        click.echo("PASS All main products match the sum of their store variants.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<8} {'SKU':<30} {'Main qty':>10} {'Variant sum':>12}  Variants")
    click.echo("="*80)
    for m in mismatches:
        variant_ids = ",".join(str(v) for v in m["variant_ids"])
        click.echo(
            f"{m['main_product_id']:<8} {m['sku'] or '-':<30} {m['quantity']:>10} "
            f"{m['variant_total']:>12}  {variant_ids}"
        )
    click.echo("="*80)
    click.echo(f"FAIL {len(mismatches)} main product(s) out of sync")


@inventory_group.command('reconcile')
@click.option('--dry-run', is_flag=True, help='Only report what would change')
@with_appcontext
def reconcile_cli(dry_run):
    """
    Recompute main product quantities from their store variants.

    Example:
        flask inventory reconcile --dry-run
        flask inventory reconcile
    """
    results = inventory_service.reconcile_main_quantities(Actor.system(), dry_run=dry_run)
    verb = "Would fix" if dry_run else "Fixed"
    for r in results:
        click.echo(f"{verb} {r['sku']} (ID: {r['main_product_id']}) -> {r['variant_total']}")
    click.echo(f"{verb} {len(results)} main product(s).")


@inventory_group.command('evaluate-alerts')
@with_appcontext
def evaluate_alerts_cli():
    """Evaluate alerts for every live product."""
    summary = alert_service.evaluate_products(_live_products())
    click.echo(
        f"Evaluated {summary['evaluated']} product(s): "
        f"{summary['open']} open alert(s), {summary['failed']} failure(s)."
    )


@inventory_group.command('review-low-stock')
@with_appcontext
def review_low_stock_cli():
    """Resolve pending low-stock alerts for products that have recovered."""
    actor = Actor.system()
    resolved = 0
    for product in _live_products():
        if alert_service.resolve_low_stock_if_recovered(product, actor) is not None:
            resolved += 1
            click.echo(f"PASS Resolved low-stock alert for {product.sku} (ID: {product.id})")
    click.echo(f"Resolved {resolved} low-stock alert(s).")


@inventory_group.command('init-mirror')
@with_appcontext
def init_mirror_cli():
    """Create the mirror document table on the mirror bind."""
    db.create_all(bind_key="mirror")
    click.echo("PASS Mirror document table ready.")


@inventory_group.command('drain-mirror')
@click.option('--requeue-failed', is_flag=True, help='Retry rows that exhausted their attempts')
@with_appcontext
def drain_mirror_cli(requeue_failed):
    """Deliver pending mirror outbox rows until the backlog stops shrinking."""
    if requeue_failed:
        requeued = mirror_service.requeue_failed()
        click.echo(f"Requeued {requeued} failed outbox row(s).")

    totals = {"delivered": 0, "retrying": 0, "failed": 0}
    while True:
        summary = mirror_service.dispatch_outbox()
        for key in totals:
            totals[key] += summary[key]
        if summary["delivered"] == 0:
            break

    backlog = mirror_service.outbox_backlog()
    click.echo(
        f"Delivered {totals['delivered']}, retrying {totals['retrying']}, failed {totals['failed']}. "
        f"Backlog: {backlog['pending']} pending, {backlog['failed']} failed."
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(inventory_group)
