from datetime import date, timedelta

import pytest

from conftest import ACTOR_ID, TODAY
from stockroll.errors import DuplicateAssignmentError, InvalidStateError, NotFoundError
from stockroll.models import InventoryAssignment, InventoryStatusHistory
from stockroll.services.consolidation_service import (
    CarriedItem,
    CarriedQuantities,
    CarriedTank,
    ConsolidationWorkflow,
)
from stockroll.services.ledger_service import TX_SALE, TankDelta
from stockroll.services.status_service import REASON_AUTO_CONSOLIDATION, REASON_AUTO_CREATION, STALE_RECOVERY_MARKER

YESTERDAY = TODAY - timedelta(days=1)


def test_carry_over_filter_and_quantities(db_session, service, make_assignment, catalog):
    # A: tank assigned 10 full, sold down to 4
    # B: item assigned 5, sold out -> carried with 0
    # C: tank with nothing assigned and nothing current -> dropped
    detail = make_assignment(
        YESTERDAY,
        tanks={catalog.tank_10.id: (10, 0), catalog.tank_45.id: (0, 0)},
        items={catalog.regulator.id: 5},
        assigned=True,
    )
    service.ledger.decrement_by_line("TANK", detail.tank_for(catalog.tank_10.id).id, TankDelta(full=6), TX_SALE, ACTOR_ID)
    service.ledger.decrement_by_line("ITEM", detail.item_for(catalog.regulator.id).id, 5, TX_SALE, ACTOR_ID)

    result = service.consolidate_and_create_next(detail.id, ACTOR_ID)
    successor = result.successor

    tank_a = successor.tank_for(catalog.tank_10.id)
    assert (tank_a.assigned_full_tanks, tank_a.current_full_tanks) == (4, 4)
    assert (tank_a.assigned_empty_tanks, tank_a.current_empty_tanks) == (0, 0)

    item_b = successor.item_for(catalog.regulator.id)
    assert item_b is not None
    assert (item_b.assigned_items, item_b.current_items) == (0, 0)

    assert successor.tank_for(catalog.tank_45.id) is None
    assert len(successor.tanks) == 1
    assert len(successor.items) == 1


def test_line_with_only_current_quantity_is_carried(service, make_assignment, catalog):
    detail = make_assignment(YESTERDAY, tanks={catalog.tank_45.id: (0, 0)}, assigned=True)
    service.ledger.increment_by_line("TANK", detail.tanks[0].id, TankDelta(empty=2), "RETURN", ACTOR_ID)

    successor = service.consolidate_and_create_next(detail.id, ACTOR_ID).successor

    line = successor.tank_for(catalog.tank_45.id)
    assert (line.assigned_full_tanks, line.assigned_empty_tanks) == (0, 2)


def test_successor_shape_and_pointer(db_session, service, make_assignment, catalog):
    detail = make_assignment(YESTERDAY, tanks={catalog.tank_10.id: (3, 1)}, assigned=True)

    result = service.consolidate_and_create_next(detail.id, ACTOR_ID)

    assert result.closed.assignment.status == "CONSOLIDATED"
    successor = result.successor.assignment
    assert successor.status == "CREATED"
    assert successor.auto_assignment is True
    assert successor.assignment_date == TODAY
    assert successor.store_assignment_id == detail.assignment.store_assignment_id

    pointer = service.repository.get_current_pointer(successor.store_assignment_id)
    assert pointer.inventory_assignment_id == successor.id
    assert service.repository.get(pointer.inventory_assignment_id).status != "CONSOLIDATED"


def test_prices_are_copied_from_the_predecessor_line(db_session, service, make_assignment, catalog):
    detail = make_assignment(YESTERDAY, tanks={catalog.tank_10.id: (3, 1)}, assigned=True)
    # catalog price changes after the line was created
    catalog.tank_10.sell_price_cents = 9999
    db_session.commit()

    line = service.consolidate_and_create_next(detail.id, ACTOR_ID).successor.tanks[0]

    assert line.purchase_price_cents == 3500
    assert line.sell_price_cents == 4200


def test_history_entries_written_for_both_assignments(db_session, service, make_assignment):
    detail = make_assignment(YESTERDAY, assigned=True)

    result = service.consolidate_and_create_next(detail.id, ACTOR_ID)

    closed_entry = service.status_history(detail.id)[0]
    assert (closed_entry.from_status, closed_entry.to_status) == ("ASSIGNED", "CONSOLIDATED")
    assert closed_entry.reason == REASON_AUTO_CONSOLIDATION
    assert closed_entry.notes.startswith(
        f"Automatically consolidated assignment dated {YESTERDAY.isoformat()}. "
        f"Next assignment scheduled for {TODAY.isoformat()}."
    )
    assert STALE_RECOVERY_MARKER not in closed_entry.notes

    successor_history = service.status_history(result.successor.id)
    assert len(successor_history) == 1
    assert successor_history[0].from_status is None
    assert successor_history[0].to_status == "CREATED"
    assert successor_history[0].reason == REASON_AUTO_CREATION


def test_created_assignment_can_be_consolidated_directly(service, make_assignment):
    detail = make_assignment(YESTERDAY)

    result = service.consolidate_and_create_next(detail.id, ACTOR_ID)

    entry = service.status_history(detail.id)[0]
    assert (entry.from_status, entry.to_status) == ("CREATED", "CONSOLIDATED")
    assert result.successor.assignment.assignment_date == TODAY


def test_stale_assignment_resumes_from_today(service, make_assignment):
    detail = make_assignment(TODAY - timedelta(days=5), assigned=True)

    result = service.consolidate_and_create_next(detail.id, ACTOR_ID)

    assert result.dates.is_stale
    assert result.successor.assignment.assignment_date == TODAY + timedelta(days=1)
    assert result.successor.assignment.assignment_date != detail.assignment.assignment_date + timedelta(days=1)
    assert STALE_RECOVERY_MARKER in service.status_history(detail.id)[0].notes

    recoveries = service.stale_recoveries()
    assert {r.inventory_assignment_id for r in recoveries} == {detail.id, result.successor.id}


def test_skip_weekends_moves_friday_to_monday(db_session, pairing, make_assignment):
    from stockroll.services.date_service import BusinessDateResolver

    friday = date(2026, 3, 6)
    resolver = BusinessDateResolver(today_provider=lambda: friday)
    workflow = ConsolidationWorkflow(db_session, date_resolver=resolver, retry_backoff=0.0)
    detail = make_assignment(friday, assigned=True)

    result = workflow.consolidate_and_create_next(detail.id, ACTOR_ID, skip_weekends=True)

    assert result.successor.assignment.assignment_date == date(2026, 3, 9)


def test_skip_weekends_default_comes_from_constructor(db_session, pairing, make_assignment):
    from stockroll.services.date_service import BusinessDateResolver

    friday = date(2026, 3, 6)
    resolver = BusinessDateResolver(today_provider=lambda: friday)
    workflow = ConsolidationWorkflow(db_session, date_resolver=resolver, skip_weekends_default=True, retry_backoff=0.0)
    detail = make_assignment(friday, assigned=True)

    assert workflow.consolidate_and_create_next(detail.id, ACTOR_ID).successor.assignment.assignment_date == date(2026, 3, 9)


@pytest.mark.parametrize("status", ["CONSOLIDATED", "VALIDATED", "OBSERVED"])
def test_closed_statuses_cannot_be_consolidated(db_session, service, make_assignment, status):
    detail = make_assignment(YESTERDAY)
    detail.assignment.status = status
    db_session.commit()

    with pytest.raises(InvalidStateError):
        service.consolidate_and_create_next(detail.id, ACTOR_ID)


def test_duplicate_target_date_rolls_back_everything(db_session, service, make_assignment, catalog):
    detail = make_assignment(YESTERDAY, tanks={catalog.tank_10.id: (2, 0)}, assigned=True)
    make_assignment(TODAY, set_current=False)
    assignments_before = db_session.query(InventoryAssignment).count()
    history_before = db_session.query(InventoryStatusHistory).count()

    with pytest.raises(DuplicateAssignmentError):
        service.consolidate_and_create_next(detail.id, ACTOR_ID)

    assert service.repository.get(detail.id).status == "ASSIGNED"
    assert db_session.query(InventoryAssignment).count() == assignments_before
    assert db_session.query(InventoryStatusHistory).count() == history_before
    pointer = service.repository.get_current_pointer(detail.assignment.store_assignment_id)
    assert pointer.inventory_assignment_id == detail.id


def test_failure_while_creating_successor_leaves_predecessor_open(db_session, service, make_assignment, monkeypatch):
    detail = make_assignment(YESTERDAY, assigned=True)

    def boom(*args, **kwargs):
        raise NotFoundError("pointer table unavailable")

    monkeypatch.setattr(service.repository, "set_current_pointer", boom)

    with pytest.raises(NotFoundError):
        service.consolidate_and_create_next(detail.id, ACTOR_ID)

    assert service.repository.get(detail.id).status == "ASSIGNED"
    assert service.repository.find_by_pairing_and_date(detail.assignment.store_assignment_id, TODAY) is None


def test_update_status_consolidated_runs_the_workflow(service, make_assignment):
    detail = make_assignment(YESTERDAY, assigned=True)

    closed = service.update_status(detail.id, "CONSOLIDATED", ACTOR_ID)

    assert closed.status == "CONSOLIDATED"
    current = service.current_assignment(detail.assignment.store_assignment_id)
    assert current.assignment.assignment_date == TODAY
    assert current.assignment.auto_assignment is True


def test_create_inventory_with_carried_quantities(db_session, service, pairing, catalog):
    carried = CarriedQuantities(
        tanks=[CarriedTank(catalog.tank_10.id, 6, 1, 3500, 4200)],
        items=[CarriedItem(catalog.regulator.id, 2, 800, 1200)],
    )

    detail = service.create_inventory_with_carried_quantities(pairing.id, "2026-03-10", ACTOR_ID, carried)

    assert detail.assignment.auto_assignment is True
    assert detail.assignment.assignment_date == date(2026, 3, 10)
    assert (detail.tanks[0].assigned_full_tanks, detail.tanks[0].current_empty_tanks) == (6, 1)
    assert detail.items[0].current_items == 2
    assert service.current_assignment(pairing.id).id == detail.id
