"""
Management command to validate ingredient/movement parity.

Recomputes current_qty from Movement deltas and compares it against
Ingredient.current_qty to detect quantity changes without a Movement.

Usage:
    python manage.py inventory_check
    python manage.py inventory_check --tenant <tenant_code>
    python manage.py inventory_check --verbose
    python manage.py inventory_check --by-type

Exit codes:
    0 - All ingredients match their movements (clean)
    1 - One or more mismatches found
"""

from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count, Sum

from inventory.models import Ingredient, Movement
from tenants.models import Tenant


class Command(BaseCommand):
    help = "Validate ingredient quantities by recomputing them from Movement deltas"

    def add_arguments(self, parser):
        parser.add_argument(
            "--tenant",
            help="Check a specific tenant only (tenant code)",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show detailed output for each mismatch as it is found",
        )
        parser.add_argument(
            "--by-type",
            action="store_true",
            help="Group movement deltas by movement type",
        )

    def handle(self, *args, **options):
        tenant_code = options.get("tenant")
        verbose = options.get("verbose", False)
        by_type = options.get("by_type", False)

        filters = {}
        if tenant_code:
            try:
                tenant = Tenant.objects.get(code=tenant_code)
            except Tenant.DoesNotExist:
                raise CommandError(f"Tenant '{tenant_code}' does not exist")
            filters["tenant"] = tenant
            self.stdout.write(f"Checking inventory for tenant: {tenant.name} ({tenant.code})")

        ingredients = (
            Ingredient.objects.filter(**filters)
            .select_related("tenant")
            .annotate(movement_total=Sum("movements__delta"))
        )
        if not ingredients.exists():
            self.stdout.write(self.style.WARNING("No ingredients found to check"))
            return

        mismatches = []
        checked = 0
        for ingredient in ingredients:
            checked += 1
            expected = Decimal(str(ingredient.movement_total or 0))
            actual = Decimal(str(ingredient.current_qty or 0))
            if expected != actual:
                mismatches.append((ingredient, expected, actual))
                if verbose:
                    self.stdout.write(self.style.ERROR(
                        f"MISMATCH: {ingredient.sku} - Expected: {expected}, Actual: {actual}"
                    ))

        self.stdout.write("=" * 60)
        self.stdout.write(f"Checked: {checked} ingredients")
        self.stdout.write(f"Mismatches: {len(mismatches)}")

        if by_type:
            self.stdout.write("=" * 60)
            stats = (
                Movement.objects.filter(**filters)
                .values("type")
                .annotate(count=Count("id"), total_delta=Sum("delta"))
                .order_by("type")
            )
            self.stdout.write(f"{'Type':<20} {'Count':<10} {'Total Delta':>15}")
            for stat in stats:
                self.stdout.write(f"{stat['type']:<20} {stat['count']:<10} {stat['total_delta'] or 0:>15}")

        if mismatches:
            for ingredient, expected, actual in mismatches:
                self.stdout.write(self.style.ERROR(
                    f"  - {ingredient.sku} ({ingredient.name}) tenant {ingredient.tenant.code}: "
                    f"Expected {expected}, Actual {actual}, Difference: {actual - expected}"
                ))
            raise CommandError(f"{len(mismatches)} ingredient(s) out of sync with movements", returncode=1)

        self.stdout.write(self.style.SUCCESS("All ingredients match their movements (clean)"))
