"""Batch repair of pending/waiting statuses across orders.

Re-applies the sequential gate to every order: the lowest operation number
with unfinished work is released (``pending``), everything after it waits.
Completed, running, paused and cancelled instances are never touched, so the
routine can run next to live traffic and any number of times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import click

from .config import TrackingSettings, configure_logging
from .domain import OperationStatus, OrderStatus, ProductionOrder
from .gating import plan_reconciliation
from .services import ShopFloorService
from .storage import TrackingDatabase

logger = logging.getLogger(__name__)

RECONCILABLE_STATUSES = frozenset({OperationStatus.PENDING, OperationStatus.WAITING})


@dataclass(slots=True)
class ReconciliationReport:
    """What a reconciliation run changed (or would change, for a dry run)."""

    team_id: Optional[str]
    dry_run: bool = False
    orders_checked: int = 0
    orders_changed: int = 0
    instances_updated: int = 0
    order_status_changes: Dict[str, OrderStatus] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.instances_updated > 0 or bool(self.order_status_changes)


def reconcile_order(
    service: ShopFloorService, order: ProductionOrder, *, dry_run: bool = False
) -> int:
    """Bring one order in line with the gate; returns the number of instances moved."""
    with service.store.transaction():
        changes = plan_reconciliation(service.instances_for_order(order.id))
        if dry_run:
            return len(changes)
        updated = 0
        for status in (OperationStatus.PENDING, OperationStatus.WAITING):
            ids = [instance_id for instance_id, target in changes.items() if target is status]
            if ids:
                updated += len(
                    service.set_status_where(ids, status, current_in=RECONCILABLE_STATUSES)
                )
        return updated


def reconcile_team(
    service: ShopFloorService,
    team_id: Optional[str] = None,
    *,
    dry_run: bool = False,
) -> ReconciliationReport:
    """Reconcile every order of ``team_id``, or of all teams when it is None.

    Each order is handled in its own transaction.
    """
    if team_id is None:
        orders: List[ProductionOrder] = service.store.orders.list()
    else:
        orders = service.list_orders(team_id)
    report = ReconciliationReport(team_id=team_id, dry_run=dry_run)

    for order in orders:
        report.orders_checked += 1
        updated = reconcile_order(service, order, dry_run=dry_run)
        status = order.status
        if not dry_run:
            status = service.recompute_order_status(order.id)
        if updated:
            report.orders_changed += 1
            report.instances_updated += updated
            logger.info(
                "Order %s: %s %d operation instance(s)",
                order.order_number,
                "would update" if dry_run else "updated",
                updated,
            )
        if status is not order.status:
            report.order_status_changes[order.order_number] = status

    logger.info(
        "Reconciliation %s: %d orders checked, %d changed, %d instances updated",
        "dry run" if dry_run else "finished",
        report.orders_checked,
        report.orders_changed,
        report.instances_updated,
    )
    return report


@click.command()
@click.option(
    "--database",
    "-d",
    default=None,
    help="SQLite database file (defaults to the configured database)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="YAML settings file",
)
@click.option("--team", "team_id", default=None, help="Only reconcile this team")
@click.option("--dry-run", is_flag=True, default=False, help="Report without writing")
def main(
    database: Optional[str],
    config_path: Optional[Path],
    team_id: Optional[str],
    dry_run: bool,
) -> None:
    """Re-derive pending/waiting statuses for all orders."""
    settings = (
        TrackingSettings.from_yaml(config_path) if config_path else TrackingSettings.from_env()
    )
    configure_logging(settings.log_level)
    db = TrackingDatabase(database or settings.database_path)
    try:
        report = reconcile_team(ShopFloorService(db), team_id, dry_run=dry_run)
    finally:
        db.close()
    click.echo(
        f"Checked {report.orders_checked} orders, "
        f"{'would update' if dry_run else 'updated'} {report.instances_updated} "
        f"instances across {report.orders_changed} orders"
    )
    for order_number, status in sorted(report.order_status_changes.items()):
        click.echo(f"  {order_number}: {status.value}")


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["ReconciliationReport", "reconcile_order", "reconcile_team", "main"]
