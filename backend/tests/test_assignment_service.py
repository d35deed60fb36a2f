import pytest

from conftest import ACTOR_ID, TODAY
from stockroll.errors import DuplicateAssignmentError, InsufficientQuantityError, NotFoundError, ValidationError
from stockroll.models import InventoryAssignment, ItemTransaction, TankTransaction
from stockroll.services.assignment_service import AdjustmentLine, DeliveryLine


def test_create_assignment_seeds_active_catalog_lines(service, pairing, catalog):
    detail = service.create_assignment(pairing.id, "2026-03-04", ACTOR_ID, notes="opening day")

    assert detail.assignment.status == "CREATED"
    assert detail.assignment.auto_assignment is False
    assert detail.assignment.notes == "opening day"
    assert {t.tank_type_id for t in detail.tanks} == {catalog.tank_10.id, catalog.tank_45.id}
    assert [i.inventory_item_id for i in detail.items] == [catalog.regulator.id]

    tank_45 = detail.tank_for(catalog.tank_45.id)
    assert (tank_45.purchase_price_cents, tank_45.sell_price_cents) == (15000, 17900)
    assert all(t.assigned_full_tanks == t.current_full_tanks == 0 for t in detail.tanks)
    assert detail.items[0].current_items == 0

    assert service.current_assignment(pairing.id).id == detail.id


def test_create_assignment_rejects_duplicates(db_session, service, pairing):
    service.create_assignment(pairing.id, TODAY, ACTOR_ID)

    with pytest.raises(DuplicateAssignmentError):
        service.create_assignment(pairing.id, TODAY, ACTOR_ID)

    assert db_session.query(InventoryAssignment).count() == 1


def test_same_date_is_allowed_for_another_pairing(service, pairing, other_pairing):
    first = service.create_assignment(pairing.id, TODAY, ACTOR_ID)
    second = service.create_assignment(other_pairing.id, TODAY, ACTOR_ID)
    assert first.id != second.id


def test_create_assignment_unknown_pairing(service, catalog):
    with pytest.raises(NotFoundError):
        service.create_assignment(9999, TODAY, ACTOR_ID)


@pytest.mark.parametrize("value", ["04/03/2026", "2026-03-04T00:00:00", None])
def test_create_assignment_rejects_bad_dates(service, pairing, value):
    with pytest.raises(ValidationError):
        service.create_assignment(pairing.id, value, ACTOR_ID)


def test_create_or_get_for_today_is_idempotent(db_session, service, pairing):
    first = service.create_or_get_for_today(pairing.id, ACTOR_ID)
    second = service.create_or_get_for_today(pairing.id, ACTOR_ID)

    assert first.id == second.id
    assert first.assignment.assignment_date == TODAY
    assert db_session.query(InventoryAssignment).count() == 1
    assert len(service.status_history(first.id)) == 1


def test_delivery_out_and_return(db_session, service, make_assignment, catalog):
    detail = make_assignment(
        tanks={catalog.tank_10.id: (6, 0)},
        items={catalog.regulator.id: 3},
        assigned=True,
    )

    service.delivery_out(detail.id, ACTOR_ID, [
        DeliveryLine(quantity=2, tank_type_id=catalog.tank_10.id, reference_id=501),
        DeliveryLine(quantity=1, inventory_item_id=catalog.regulator.id, reference_id=501),
    ])
    service.delivery_return(detail.id, ACTOR_ID, [
        {"tank_type_id": catalog.tank_10.id, "quantity": 2, "is_empty": True, "reference_id": 501},
        {"tank_type_id": catalog.tank_10.id, "quantity": 1, "reference_id": 502},
        {"inventory_item_id": catalog.regulator.id, "quantity": 1},
    ])

    tank = service.ledger.current_balance(detail.id, "TANK", catalog.tank_10.id)
    item = service.ledger.current_balance(detail.id, "ITEM", catalog.regulator.id)
    assert tank.current == {"full": 5, "empty": 2}
    assert item.current == {"quantity": 3}

    kinds = [r.transaction_type for r in db_session.query(TankTransaction).order_by(TankTransaction.id)]
    assert kinds == ["SALE", "RETURN", "RETURN"]
    out = db_session.query(TankTransaction).filter_by(transaction_type="SALE").one()
    assert (out.full_tanks_change, out.empty_tanks_change, out.reference_id) == (-2, 0, 501)


def test_delivery_out_is_all_or_nothing(db_session, service, make_assignment, catalog):
    detail = make_assignment(
        tanks={catalog.tank_10.id: (6, 0)},
        items={catalog.regulator.id: 1},
        assigned=True,
    )

    with pytest.raises(InsufficientQuantityError):
        service.delivery_out(detail.id, ACTOR_ID, [
            DeliveryLine(quantity=2, tank_type_id=catalog.tank_10.id),
            DeliveryLine(quantity=5, inventory_item_id=catalog.regulator.id),
        ])

    assert db_session.query(TankTransaction).count() == 0
    assert service.ledger.current_balance(detail.id, "TANK", catalog.tank_10.id).current["full"] == 6


@pytest.mark.parametrize("line", [
    {"quantity": 1},
    {"quantity": 1, "tank_type_id": 1, "inventory_item_id": 1},
    {"quantity": 0, "inventory_item_id": 1},
    {"quantity": -2, "inventory_item_id": 1},
])
def test_delivery_line_validation(service, make_assignment, line):
    detail = make_assignment()
    with pytest.raises(ValidationError):
        service.delivery_out(detail.id, ACTOR_ID, [line])


def test_stock_adjustment_applies_differences(db_session, service, make_assignment, catalog):
    detail = make_assignment(
        tanks={catalog.tank_10.id: (6, 1)},
        items={catalog.regulator.id: 3},
        assigned=True,
    )

    result = service.stock_adjustment(detail.id, ACTOR_ID, [
        AdjustmentLine(current_quantity=6, adjusted_quantity=4, reason="count", tank_type_id=catalog.tank_10.id),
        AdjustmentLine(current_quantity=3, adjusted_quantity=3, reason="ok", inventory_item_id=catalog.regulator.id),
        {"current_quantity": 3, "adjusted_quantity": 5, "reason": "found", "inventory_item_id": catalog.regulator.id},
    ])

    assert len(result.applied) == 2
    assert service.ledger.current_balance(detail.id, "TANK", catalog.tank_10.id).current == {"full": 4, "empty": 1}
    assert service.ledger.current_balance(detail.id, "ITEM", catalog.regulator.id).current == {"quantity": 5}
    item_tx = db_session.query(ItemTransaction).one()
    assert item_tx.transaction_type == "PURCHASE"
    assert item_tx.notes == "Stock adjustment: found"


def test_current_balances_lists_every_line(service, make_assignment, catalog):
    detail = make_assignment(
        tanks={catalog.tank_10.id: (2, 1), catalog.tank_45.id: (0, 0)},
        items={catalog.regulator.id: 4},
    )

    rows = service.current_balances(detail.id)

    assert [(r.line_type, r.catalog_id) for r in rows] == [
        ("TANK", catalog.tank_10.id),
        ("TANK", catalog.tank_45.id),
        ("ITEM", catalog.regulator.id),
    ]
    assert rows[0].to_dict()["assigned"] == {"full": 2, "empty": 1}


def test_current_balances_unknown_assignment(service, pairing):
    with pytest.raises(NotFoundError):
        service.current_balances(123456)


def test_find_assignments_filters(service, pairing, other_pairing, catalog):
    a = service.create_assignment(pairing.id, "2026-03-02", ACTOR_ID)
    b = service.create_assignment(pairing.id, "2026-03-03", ACTOR_ID)
    c = service.create_assignment(other_pairing.id, "2026-03-03", ACTOR_ID)
    service.update_status(b.id, "ASSIGNED", ACTOR_ID)

    assert [x.id for x in service.find_assignments(store_assignment_id=pairing.id)] == [b.id, a.id]
    assert {x.id for x in service.find_assignments(assignment_date="2026-03-03")} == {b.id, c.id}
    assert [x.id for x in service.find_assignments(status="ASSIGNED")] == [b.id]
    assert len(service.find_assignments(store_id=catalog.store.id)) == 3

    detail = service.get_assignment_detail(b.id).to_dict()
    assert detail["assignment_date"] == "2026-03-03"
    assert len(detail["tanks"]) == 2


def test_current_assignment_without_pointer(service, pairing):
    assert service.current_assignment(pairing.id) is None
