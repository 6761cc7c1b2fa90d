"""
Medication inventory: batch receipt and first-expiry-first-out allocation.

Stock of a medication is the sum of its batches' ``quantity_on_hand``.
Allocation locks every non-empty batch of the medication, plans the
whole request against them in expiry order and only then decrements, so
a request that cannot be met in full leaves every batch untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models import F, Prefetch, Sum
from django.db.models.functions import Coalesce

from clinical.exceptions import InsufficientStockError, NotFoundError, ValidationError
from clinical.models import InventoryBatch, Medication, User
from clinical.services.audit import log_action
from clinical.services.notifications import broadcast_refresh

logger = logging.getLogger(__name__)

LOW_STOCK_CACHE_KEY = 'inventory:low-stock'

FEFO_ORDER = ('expiry_date', 'id')


@dataclass(frozen=True)
class Allocation:
    batch: InventoryBatch
    quantity: int


def _stock_changed(medication_id) -> None:
    def _after_commit():
        cache.delete(LOW_STOCK_CACHE_KEY)
        broadcast_refresh([LOW_STOCK_CACHE_KEY, f'inventory:medication:{medication_id}'])
    transaction.on_commit(_after_commit)


def _positive_int(value, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if number != value and not isinstance(value, str):
        raise ValidationError(f'{field} must be an integer')
    if number <= 0:
        raise ValidationError(f'{field} must be positive')
    return number


@transaction.atomic
def receive_stock(actor: User, *, medication_id, batch_number: str, quantity: int,
                  expiry_date: date, cost_price, supplier: str = '') -> InventoryBatch:
    """Append a new batch; deliveries are never merged into existing ones."""
    quantity = _positive_int(quantity, 'quantity')
    if not batch_number:
        raise ValidationError('batch number is required')
    if expiry_date is None:
        raise ValidationError('expiry date is required')
    try:
        cost = Decimal(str(cost_price))
    except (InvalidOperation, ValueError):
        raise ValidationError('cost price must be a decimal amount')
    if not cost.is_finite() or cost < 0:
        raise ValidationError('cost price must not be negative')

    medication = Medication.objects.filter(id=medication_id).first()
    if medication is None:
        raise NotFoundError(f'medication {medication_id} not found')

    batch = InventoryBatch.objects.create(
        medication=medication,
        batch_number=batch_number,
        quantity_on_hand=quantity,
        expiry_date=expiry_date,
        cost_price=cost,
        supplier=supplier or '',
    )
    _stock_changed(medication.id)
    log_action(user=actor, action='stock_receive', obj=batch,
               detail={'medicationId': medication.id, 'batch': batch_number, 'quantity': quantity})
    logger.info('received %s x %s (batch %s)', quantity, medication.name, batch_number)
    return batch


@transaction.atomic
def allocate_for_dispense(medication_id, quantity_needed: int) -> list[Allocation]:
    """Take ``quantity_needed`` units from the earliest-expiring batches.

    Joins the caller's transaction when there is one, so the decrements
    commit or roll back together with the dispense that requested them.
    Raises :class:`InsufficientStockError` without touching any batch if
    total stock is short.
    """
    quantity_needed = _positive_int(quantity_needed, 'quantity')
    if not Medication.objects.filter(id=medication_id).exists():
        raise NotFoundError(f'medication {medication_id} not found')

    batches = list(
        InventoryBatch.objects.select_for_update()
        .filter(medication_id=medication_id, quantity_on_hand__gt=0)
        .order_by(*FEFO_ORDER)
    )
    plan: list[Allocation] = []
    remaining = quantity_needed
    for batch in batches:
        if remaining == 0:
            break
        take = min(batch.quantity_on_hand, remaining)
        plan.append(Allocation(batch=batch, quantity=take))
        remaining -= take
    if remaining > 0:
        raise InsufficientStockError(medication_id, quantity_needed, quantity_needed - remaining)

    for allocation in plan:
        allocation.batch.quantity_on_hand -= allocation.quantity
        allocation.batch.save(update_fields=['quantity_on_hand'])
    _stock_changed(medication_id)
    logger.debug('allocated %s of medication %s from %d batch(es)', quantity_needed, medication_id, len(plan))
    return plan


def total_stock(medication_id) -> int:
    if not Medication.objects.filter(id=medication_id).exists():
        raise NotFoundError(f'medication {medication_id} not found')
    return InventoryBatch.objects.filter(medication_id=medication_id).aggregate(
        total=Coalesce(Sum('quantity_on_hand'), 0)
    )['total']


def _with_stock(qs):
    return qs.annotate(stock=Coalesce(Sum('batches__quantity_on_hand'), 0))


def low_stock_alerts(*, use_cache: bool = True) -> list[dict]:
    """Medications whose total stock is at or below their reorder level."""
    if use_cache:
        cached = cache.get(LOW_STOCK_CACHE_KEY)
        if cached is not None:
            return cached
    meds = _with_stock(Medication.objects.all()).filter(stock__lte=F('reorder_level')).order_by('stock', 'name')
    data = [
        {
            'medicationId': m.id,
            'name': m.name,
            'totalStock': m.stock,
            'reorderLevel': m.reorder_level,
        }
        for m in meds
    ]
    cache.set(LOW_STOCK_CACHE_KEY, data, settings.LOW_STOCK_CACHE_SECONDS)
    return data


def inventory_status() -> list[dict]:
    fefo = Prefetch(
        'batches',
        queryset=InventoryBatch.objects.filter(quantity_on_hand__gt=0).order_by(*FEFO_ORDER),
        to_attr='fefo_batches',
    )
    meds = _with_stock(Medication.objects.all()).prefetch_related(fefo).order_by('name')
    return [format_medication(m) for m in meds]


def format_medication(med: Medication) -> dict:
    return {
        'id': med.id,
        'name': med.name,
        'dosageForm': med.dosage_form,
        'unitPrice': str(med.unit_price),
        'reorderLevel': med.reorder_level,
        'totalStock': getattr(med, 'stock', None),
        'batches': [format_batch(b) for b in getattr(med, 'fefo_batches', [])],
    }


def format_batch(batch: InventoryBatch) -> dict:
    return {
        'id': batch.id,
        'batchNumber': batch.batch_number,
        'quantityOnHand': batch.quantity_on_hand,
        'expiryDate': batch.expiry_date.isoformat(),
        'supplier': batch.supplier,
    }
