from datetime import date
from decimal import Decimal

import pytest

from clinical.exceptions import InsufficientStockError, NotFoundError, ValidationError
from clinical.models import InventoryBatch, Medication
from clinical.services import inventory
from clinical.services.inventory import (
    allocate_for_dispense,
    inventory_status,
    low_stock_alerts,
    receive_stock,
    total_stock,
)

pytestmark = pytest.mark.django_db


@pytest.fixture
def two_batches(medication, make_batch):
    b1 = make_batch(medication, 'B1', 5, date(2025, 6, 1))
    b2 = make_batch(medication, 'B2', 10, date(2025, 9, 1))
    return b1, b2


def test_fefo_allocation_drains_earliest_expiry_first(medication, two_batches):
    b1, b2 = two_batches
    plan = allocate_for_dispense(medication.id, 7)

    assert [(a.batch.id, a.quantity) for a in plan] == [(b1.id, 5), (b2.id, 2)]
    b1.refresh_from_db()
    b2.refresh_from_db()
    assert (b1.quantity_on_hand, b2.quantity_on_hand) == (0, 8)
    assert total_stock(medication.id) == 8


def test_insufficient_stock_touches_nothing(medication, two_batches):
    with pytest.raises(InsufficientStockError) as excinfo:
        allocate_for_dispense(medication.id, 20)
    assert excinfo.value.requested == 20
    assert excinfo.value.available == 15
    assert sorted(InventoryBatch.objects.values_list('quantity_on_hand', flat=True)) == [5, 10]


def test_same_expiry_falls_back_to_receipt_order(medication, make_batch):
    first = make_batch(medication, 'A', 3, date(2025, 6, 1))
    second = make_batch(medication, 'B', 3, date(2025, 6, 1))
    plan = allocate_for_dispense(medication.id, 4)
    assert [(a.batch.id, a.quantity) for a in plan] == [(first.id, 3), (second.id, 1)]


def test_empty_batches_are_skipped(medication, make_batch):
    make_batch(medication, 'EMPTY', 0, date(2025, 1, 1))
    live = make_batch(medication, 'LIVE', 4, date(2025, 12, 1))
    plan = allocate_for_dispense(medication.id, 4)
    assert [(a.batch.id, a.quantity) for a in plan] == [(live.id, 4)]


def test_exact_total_empties_every_batch(medication, two_batches):
    allocate_for_dispense(medication.id, 15)
    assert total_stock(medication.id) == 0
    with pytest.raises(InsufficientStockError):
        allocate_for_dispense(medication.id, 1)


@pytest.mark.parametrize('quantity', [0, -3])
def test_non_positive_request_is_invalid(medication, two_batches, quantity):
    with pytest.raises(ValidationError):
        allocate_for_dispense(medication.id, quantity)


def test_unknown_medication_is_not_found(db):
    with pytest.raises(NotFoundError):
        allocate_for_dispense(999999, 1)
    with pytest.raises(NotFoundError):
        total_stock(999999)


def test_receiving_same_batch_number_appends_a_new_batch(pharmacist, medication, make_batch):
    make_batch(medication, 'LOT-7', 5, date(2025, 6, 1))
    batch = receive_stock(
        pharmacist, medication_id=medication.id, batch_number='LOT-7', quantity=20,
        expiry_date=date(2026, 1, 1), cost_price=Decimal('1.10'), supplier='MedSupply',
    )
    assert batch.quantity_on_hand == 20
    assert InventoryBatch.objects.filter(medication=medication, batch_number='LOT-7').count() == 2
    assert total_stock(medication.id) == 25


@pytest.mark.parametrize('quantity,cost', [(0, '1.00'), (-5, '1.00'), (5, '-0.01'), (5, 'abc')])
def test_receive_rejects_bad_quantities_and_prices(pharmacist, medication, quantity, cost):
    with pytest.raises(ValidationError):
        receive_stock(
            pharmacist, medication_id=medication.id, batch_number='X', quantity=quantity,
            expiry_date=date(2026, 1, 1), cost_price=cost,
        )
    assert not InventoryBatch.objects.exists()


def test_low_stock_alerts_are_cached_until_stock_changes(pharmacist, medication, make_batch,
                                                         django_capture_on_commit_callbacks):
    Medication.objects.create(name='Paracetamol 500mg', unit_price=Decimal('0.20'), reorder_level=0)
    make_batch(medication, 'B1', 4, date(2025, 6, 1))

    alerts = low_stock_alerts()
    assert [a['name'] for a in alerts] == ['Paracetamol 500mg', medication.name]

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        receive_stock(pharmacist, medication_id=medication.id, batch_number='B2', quantity=50,
                      expiry_date=date(2026, 1, 1), cost_price='1.00')
    assert len(callbacks) == 1

    assert [a['name'] for a in low_stock_alerts()] == ['Paracetamol 500mg']


def test_stock_change_broadcasts_refresh_after_commit(pharmacist, medication, monkeypatch,
                                                      django_capture_on_commit_callbacks):
    sent = []
    monkeypatch.setattr(inventory, 'broadcast_refresh', lambda keys: sent.append(keys))

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        receive_stock(pharmacist, medication_id=medication.id, batch_number='B1', quantity=5,
                      expiry_date=date(2026, 1, 1), cost_price='1.00')
    assert sent == []

    for callback in callbacks:
        callback()
    assert sent == [[inventory.LOW_STOCK_CACHE_KEY, f'inventory:medication:{medication.id}']]


def test_inventory_status_lists_live_batches_in_fefo_order(medication, make_batch):
    make_batch(medication, 'LATE', 2, date(2026, 1, 1))
    make_batch(medication, 'EMPTY', 0, date(2024, 1, 1))
    make_batch(medication, 'EARLY', 3, date(2025, 2, 1))

    [entry] = inventory_status()
    assert entry['totalStock'] == 5
    assert [b['batchNumber'] for b in entry['batches']] == ['EARLY', 'LATE']
