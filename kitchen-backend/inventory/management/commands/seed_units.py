"""
Upsert the default measurement units for one tenant or all tenants.

Usage:
    python manage.py seed_units
    python manage.py seed_units --tenant <tenant_code>
"""

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from inventory.models import Unit
from tenants.models import Tenant

DEFAULT_UNITS = [
    ("G", "Grams", 0),
    ("KG", "Kilograms", 3),
    ("ML", "Milliliters", 0),
    ("L", "Liters", 3),
    ("CT", "Count", 0),
]


class Command(BaseCommand):
    help = "Create or update the default units (G, KG, ML, L, CT) per tenant"

    def add_arguments(self, parser):
        parser.add_argument("--tenant", help="Tenant code (default: all active tenants)")

    def handle(self, *args, **options):
        code = options.get("tenant")
        if code:
            tenants = list(Tenant.objects.filter(code=code))
            if not tenants:
                raise CommandError(f"Tenant '{code}' does not exist")
        else:
            tenants = list(Tenant.objects.filter(is_active=True))

        for tenant in tenants:
            created_count = 0
            with transaction.atomic():
                for unit_code, name, precision in DEFAULT_UNITS:
                    _, created = Unit.objects.update_or_create(
                        tenant=tenant, code=unit_code,
                        defaults={"name": name, "precision": precision, "is_active": True},
                    )
                    created_count += int(created)
            self.stdout.write(self.style.SUCCESS(
                f"{tenant.code}: {created_count} created, {len(DEFAULT_UNITS) - created_count} updated"
            ))
