"""Demonstration script walking one order through its routing."""

from __future__ import annotations

from pprint import pprint

from . import ManualClock, OrderPriority, PauseCategory, ShopFloorService
from .reconciliation import reconcile_team

TEAM = "werk-bielefeld"


def main() -> None:
    clock = ManualClock()
    shop = ShopFloorService(clock=clock, validate_pause_reasons=True)

    # Stammdaten
    laser = shop.create_department(TEAM, "Blechzentrum")
    welding = shop.create_department(TEAM, "Schweißerei")
    breakdown = shop.create_pause_reason(
        TEAM,
        "Maschinenstörung",
        category=PauseCategory.UNPLANNED,
        description="Laserquelle meldet Fehler",
    )

    routing = shop.create_routing(
        TEAM,
        "Konsole geschweißt",
        [
            shop.build_operation(
                10, "Laserschneiden", run_time_minutes=12, department_id=laser.id
            ),
            shop.build_operation(
                20,
                "Schweißen",
                run_time_minutes=25,
                department_id=welding.id,
                parallel_instances=2,
            ),
            shop.build_operation(30, "Endkontrolle", run_time_minutes=5),
        ],
    )
    order = shop.create_production_order(
        TEAM, "FA-2024-0815", routing.id, 40, priority=OrderPriority.HIGH
    )
    cut, weld_a, weld_b, inspect = shop.instances_for_order(order.id)

    # Laserschneiden mit Unterbrechung
    shop.start_operation(cut.id, "m.keller")
    clock.advance(minutes=20)
    shop.pause_operation(cut.id, breakdown.id, "Düse getauscht")
    clock.advance(minutes=8)
    shop.resume_operation(cut.id)
    clock.advance(minutes=15)
    shop.complete_operation(cut.id, {"sheet_thickness_mm": 3}, 40, 1)
    print("Aktive Zeit Laserschneiden:", shop.get_active_seconds(cut.id), "s")
    print("Auftragsstatus nach OP 10:", shop.get_order(order.id).status.value)

    # Zwei Schweißplätze arbeiten parallel
    for instance, operator in ((weld_a, "a.yilmaz"), (weld_b, "j.schulz")):
        shop.start_operation(instance.id, operator)
    clock.advance(minutes=30)
    shop.complete_operation(weld_a.id, quantity_completed=20)
    print("Endkontrolle nach erstem Schweißplatz:", shop.get_operation_instance(inspect.id).status.value)
    clock.advance(minutes=5)
    shop.complete_operation(weld_b.id, quantity_completed=19, quantity_rejected=1)
    print("Endkontrolle nach zweitem Schweißplatz:", shop.get_operation_instance(inspect.id).status.value)

    shop.start_operation(inspect.id, "qs.berger")
    clock.advance(minutes=6)
    shop.complete_operation(inspect.id, {"passed": True}, 39)

    final = shop.get_order(order.id)
    print("Auftragsstatus:", final.status.value, "abgeschlossen am", final.actual_end_date)
    print("Fortschritt:", shop.get_order_progress(order.id), "%")
    pprint(shop.pause_reason_usage(TEAM))
    pprint(reconcile_team(shop, TEAM))


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
