from django.core.management.base import BaseCommand
from django.utils import timezone

from clinical.services.beds import OCCUPANCY_CACHE_KEY, ward_occupancy
from clinical.services.inventory import LOW_STOCK_CACHE_KEY, low_stock_alerts
from clinical.services.notifications import broadcast_refresh


class Command(BaseCommand):
    help = "Warm and refresh API caches; broadcast WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        keys_refreshed = []

        alerts = low_stock_alerts(use_cache=False)
        keys_refreshed.append(LOW_STOCK_CACHE_KEY)

        wards = ward_occupancy(use_cache=False)
        keys_refreshed.append(OCCUPANCY_CACHE_KEY)

        broadcast_refresh(keys_refreshed)
        self.stdout.write(self.style.SUCCESS(
            f"Refreshed {len(keys_refreshed)} keys at {now} ({len(alerts)} low-stock, {len(wards)} wards)"
        ))
