import pytest
from django.db import transaction

from clinical.db_routers import ReadReplicaRouter
from clinical.models import Appointment


@pytest.fixture
def router(monkeypatch):
    r = ReadReplicaRouter()
    monkeypatch.setattr(r, '_has_replica', lambda: True)
    return r


def test_reads_use_replica_outside_transactions(router):
    assert router.db_for_read(Appointment) == 'replica'
    assert router.db_for_write(Appointment) == 'default'


@pytest.mark.django_db
def test_reads_inside_atomic_block_stay_on_primary(router):
    with transaction.atomic():
        assert router.db_for_read(Appointment) == 'default'


def test_without_replica_everything_is_default():
    r = ReadReplicaRouter()
    assert r.db_for_read(Appointment) == 'default'
    assert r.allow_migrate('default', 'clinical')
    assert not r.allow_migrate('replica', 'clinical')
