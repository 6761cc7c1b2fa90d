"""
Database router sending reads to a replica when one is configured.

Reads issued while the primary has an open transaction stay on the
primary, so a service that locks rows and then re-reads them never sees
replica lag.
"""
from django.conf import settings
from django.db import connections


class ReadReplicaRouter:
    replica_alias = 'replica'

    def _has_replica(self) -> bool:
        return self.replica_alias in settings.DATABASES

    def db_for_read(self, model, **hints):
        if not self._has_replica() or connections['default'].in_atomic_block:
            return 'default'
        return self.replica_alias

    def db_for_write(self, model, **hints):
        return 'default'

    def allow_relation(self, obj1, obj2, **hints):
        # both aliases point at the same data
        return True

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        return db == 'default'
