from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import IntegrityError, transaction
from django.test import TestCase

from inventory.models import Ingredient, Movement, Unit
from tenants.models import Tenant


class InventoryModelTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro", code="bistro")
        self.unit = Unit.objects.create(tenant=self.tenant, code="kg", name="Kilograms", precision=3)

    def test_unit_code_is_upper_cased(self):
        self.assertEqual(self.unit.code, "KG")

    def test_unit_code_unique_per_tenant(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            Unit.objects.create(tenant=self.tenant, code="KG", name="Duplicate")
        other = Tenant.objects.create(name="Cafe", code="cafe")
        Unit.objects.create(tenant=other, code="KG", name="Kilograms")

    def test_unit_precision_bounded(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            Unit.objects.create(tenant=self.tenant, code="X", name="X", precision=7)

    def test_ingredient_sku_unique_per_tenant(self):
        Ingredient.objects.create(tenant=self.tenant, sku="10023", name="Widget", base_unit=self.unit)
        with self.assertRaises(IntegrityError), transaction.atomic():
            Ingredient.objects.create(tenant=self.tenant, sku="10023", name="Again", base_unit=self.unit)

    def test_ingredient_quantities_non_negative(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            Ingredient.objects.create(
                tenant=self.tenant, sku="1", name="Neg", base_unit=self.unit, current_qty=Decimal("-1"),
            )
        with self.assertRaises(IntegrityError), transaction.atomic():
            Ingredient.objects.create(
                tenant=self.tenant, sku="2", name="Neg", base_unit=self.unit, par_level=Decimal("-1"),
            )

    def test_movement_is_append_only(self):
        ingredient = Ingredient.objects.create(tenant=self.tenant, sku="1", name="Flour", base_unit=self.unit)
        movement = Movement.objects.create(
            tenant=self.tenant, ingredient=ingredient, type=Movement.PURCHASE, delta=Decimal("2"),
        )
        movement.reason = "edited"
        with self.assertRaises(ValueError):
            movement.save()

    def test_import_key_unique_only_when_set(self):
        ingredient = Ingredient.objects.create(tenant=self.tenant, sku="1", name="Flour", base_unit=self.unit)
        for _ in range(2):
            Movement.objects.create(tenant=self.tenant, ingredient=ingredient, type=Movement.PURCHASE, delta=1)
        Movement.objects.create(
            tenant=self.tenant, ingredient=ingredient, type=Movement.PURCHASE, delta=1, import_key="k" * 64,
        )
        with self.assertRaises(IntegrityError), transaction.atomic():
            Movement.objects.create(
                tenant=self.tenant, ingredient=ingredient, type=Movement.PURCHASE, delta=1, import_key="k" * 64,
            )


class SeedUnitsCommandTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro", code="bistro")
        self.other = Tenant.objects.create(name="Cafe", code="cafe")

    def test_seeds_single_tenant(self):
        call_command("seed_units", "--tenant", "bistro", stdout=StringIO())
        self.assertEqual(
            sorted(Unit.objects.filter(tenant=self.tenant).values_list("code", "name", "precision")),
            [("CT", "Count", 0), ("G", "Grams", 0), ("KG", "Kilograms", 3), ("L", "Liters", 3), ("ML", "Milliliters", 0)],
        )
        self.assertFalse(Unit.objects.filter(tenant=self.other).exists())

    def test_rerun_updates_without_duplicates(self):
        Unit.objects.create(tenant=self.tenant, code="KG", name="Kilo", precision=1, is_active=False)
        call_command("seed_units", stdout=StringIO())
        call_command("seed_units", stdout=StringIO())
        self.assertEqual(Unit.objects.filter(tenant=self.tenant).count(), 5)
        self.assertEqual(Unit.objects.filter(tenant=self.other).count(), 5)
        kg = Unit.objects.get(tenant=self.tenant, code="KG")
        self.assertEqual((kg.name, kg.precision, kg.is_active), ("Kilograms", 3, True))

    def test_unknown_tenant(self):
        with self.assertRaises(CommandError):
            call_command("seed_units", "--tenant", "nope", stdout=StringIO())


class InventoryCheckCommandTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Bistro", code="bistro")
        unit = Unit.objects.create(tenant=self.tenant, code="KG", name="Kilograms")
        self.ingredient = Ingredient.objects.create(
            tenant=self.tenant, sku="1", name="Flour", base_unit=unit, current_qty=Decimal("2"),
        )
        Movement.objects.create(tenant=self.tenant, ingredient=self.ingredient, type=Movement.PURCHASE, delta=2)

    def test_clean(self):
        out = StringIO()
        call_command("inventory_check", "--tenant", "bistro", "--by-type", stdout=out)
        self.assertIn("clean", out.getvalue())

    def test_mismatch(self):
        Ingredient.objects.filter(id=self.ingredient.id).update(current_qty=Decimal("5"))
        with self.assertRaises(CommandError):
            call_command("inventory_check", stdout=StringIO())
