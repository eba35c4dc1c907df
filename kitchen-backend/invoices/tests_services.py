"""
Preview annotation and the ingestion engine.
"""
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase

from inventory.models import Ingredient, Movement, Unit
from invoices import services
from invoices.services import (
    IngestionError,
    NothingToApplyError,
    annotate_with_existing,
    build_import_keys,
    ingest_lines,
)
from invoices.types import NormalizedLine
from tenants.models import Tenant


def _line(sku="10023", quantity=5.0, unit_code="CS", **extra):
    data = dict(
        sku=sku,
        name=f"Item {sku}",
        quantity=quantity,
        unit_code=unit_code,
        category="dry",
        source_dept="GR",
        brand="ACME",
        pack_size=None,
        unit_cost=12.5,
        extended_cost=62.5,
    )
    data.update(extra)
    return NormalizedLine(**data)


class IngestionTestBase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="receiver", password="test-pass")
        self.tenant = Tenant.objects.create(name="Bistro", code="bistro")
        self.other_tenant = Tenant.objects.create(name="Cafe", code="cafe")


class AnnotateTests(IngestionTestBase):
    def test_marks_existing_skus_in_one_query(self):
        unit = Unit.objects.create(tenant=self.tenant, code="CS", name="Case")
        existing = Ingredient.objects.create(tenant=self.tenant, sku="10023", name="Widget", base_unit=unit)
        other_unit = Unit.objects.create(tenant=self.other_tenant, code="CS", name="Case")
        Ingredient.objects.create(tenant=self.other_tenant, sku="20045", name="Salmon", base_unit=other_unit)

        with self.assertNumQueries(1):
            annotated = annotate_with_existing([_line("10023"), _line("20045"), _line("10023")], self.tenant)

        self.assertEqual([a.exists for a in annotated], [True, False, True])
        self.assertEqual(annotated[0].ingredient_id, existing.id)
        self.assertIsNone(annotated[1].ingredient_id)
        self.assertEqual(annotated[0].name, "Item 10023")
        # read-only
        self.assertEqual(Movement.objects.count(), 0)

    def test_empty_input_runs_no_query(self):
        with self.assertNumQueries(0):
            self.assertEqual(annotate_with_existing([], self.tenant), [])


class IngestLinesTests(IngestionTestBase):
    def test_creates_unit_ingredient_and_movement(self):
        outcomes = ingest_lines([_line()], self.tenant, self.user, invoice_ref="123456")

        self.assertEqual(len(outcomes), 1)
        outcome = outcomes[0]
        self.assertTrue(outcome.created)
        self.assertEqual(outcome.status, "applied")
        self.assertEqual(outcome.quantity_added, 5.0)

        unit = Unit.objects.get(tenant=self.tenant, code="CS")
        self.assertEqual((unit.name, unit.precision), ("Case", 0))

        ingredient = Ingredient.objects.get(id=outcome.ingredient_id)
        self.assertEqual(ingredient.sku, "10023")
        self.assertEqual(ingredient.base_unit, unit)
        self.assertEqual(ingredient.category, "dry")
        self.assertEqual(ingredient.current_qty, Decimal("5"))
        self.assertEqual(ingredient.par_level, Decimal("0"))

        movement = Movement.objects.get(id=outcome.movement_id)
        self.assertEqual(movement.type, Movement.PURCHASE)
        self.assertEqual(movement.delta, Decimal("5"))
        self.assertEqual(movement.balance_after, Decimal("5"))
        self.assertEqual(movement.reason, "Invoice 123456")
        self.assertEqual(movement.created_by, self.user)
        self.assertEqual(len(movement.import_key), 64)

    def test_existing_ingredient_is_incremented(self):
        unit = Unit.objects.create(tenant=self.tenant, code="CS", name="Carton", precision=1)
        ingredient = Ingredient.objects.create(
            tenant=self.tenant, sku="10023", name="Old Name", category="bar",
            base_unit=unit, current_qty=Decimal("3"),
        )

        outcome = ingest_lines([_line(quantity=2)], self.tenant, self.user)[0]

        self.assertFalse(outcome.created)
        self.assertEqual(outcome.ingredient_id, ingredient.id)
        ingredient.refresh_from_db()
        self.assertEqual(ingredient.current_qty, Decimal("5"))
        self.assertEqual(ingredient.name, "Old Name")
        self.assertEqual(ingredient.category, "bar")
        unit.refresh_from_db()
        self.assertEqual((unit.name, unit.precision), ("Carton", 1))
        self.assertEqual(Unit.objects.filter(tenant=self.tenant).count(), 1)

    def test_units_are_resolved_once_per_code(self):
        ingest_lines(
            [_line("1", unit_code="LB"), _line("2", unit_code="LB"), _line("3", unit_code="BX")],
            self.tenant, self.user,
        )
        self.assertEqual(
            sorted(Unit.objects.filter(tenant=self.tenant).values_list("code", "name", "precision")),
            [("BX", "BX Unit", 2), ("LB", "Pounds", 2)],
        )

    def test_skips_unselected_lines(self):
        outcomes = ingest_lines(
            [_line("1", apply=False), _line("2"), _line("3", quantity=0)],
            self.tenant, self.user,
        )
        self.assertEqual([o.sku for o in outcomes], ["2"])
        self.assertFalse(Ingredient.objects.filter(sku__in=["1", "3"]).exists())

    def test_nothing_selected(self):
        with self.assertRaises(NothingToApplyError):
            ingest_lines([_line(apply=False)], self.tenant, self.user)
        with self.assertRaises(NothingToApplyError):
            ingest_lines([], self.tenant, self.user)
        self.assertEqual(Movement.objects.count(), 0)

    def test_every_quantity_change_has_one_movement(self):
        ingest_lines([_line("1", quantity=1.5), _line("1", quantity=2.25)], self.tenant, self.user)
        ingredient = Ingredient.objects.get(tenant=self.tenant, sku="1")
        movements = list(ingredient.movements.order_by("id"))
        self.assertEqual([m.delta for m in movements], [Decimal("1.5"), Decimal("2.25")])
        self.assertEqual([m.balance_after for m in movements], [Decimal("1.5"), Decimal("3.75")])
        self.assertEqual(sum(m.delta for m in movements), ingredient.current_qty)

    def test_tenants_are_isolated(self):
        ingest_lines([_line()], self.tenant, self.user)
        ingest_lines([_line()], self.other_tenant, self.user)
        self.assertEqual(Ingredient.objects.filter(sku="10023").count(), 2)
        self.assertEqual(Unit.objects.filter(code="CS").count(), 2)


class IdempotencyTests(IngestionTestBase):
    def test_reapplying_same_invoice_is_reported_as_duplicate(self):
        ingest_lines([_line("1"), _line("2")], self.tenant, self.user, invoice_ref="123456")
        outcomes = ingest_lines([_line("1"), _line("2")], self.tenant, self.user, invoice_ref="123456")

        self.assertEqual([o.status for o in outcomes], ["duplicate", "duplicate"])
        self.assertEqual([o.quantity_added for o in outcomes], [0.0, 0.0])
        self.assertEqual(Ingredient.objects.get(tenant=self.tenant, sku="1").current_qty, Decimal("5"))
        self.assertEqual(Movement.objects.filter(tenant=self.tenant).count(), 2)

    def test_repeated_line_on_same_invoice_is_applied_twice(self):
        outcomes = ingest_lines([_line("1"), _line("1")], self.tenant, self.user, invoice_ref="123456")
        self.assertEqual([o.status for o in outcomes], ["applied", "applied"])
        self.assertEqual(Ingredient.objects.get(tenant=self.tenant, sku="1").current_qty, Decimal("10"))

    def test_without_reference_apply_is_at_least_once(self):
        ingest_lines([_line("1")], self.tenant, self.user)
        ingest_lines([_line("1")], self.tenant, self.user)
        self.assertEqual(Ingredient.objects.get(tenant=self.tenant, sku="1").current_qty, Decimal("10"))
        movement = Movement.objects.filter(tenant=self.tenant).first()
        self.assertEqual(movement.reason, f"Invoice import by {self.user.pk}")
        self.assertEqual(movement.import_key, "")

    def test_keys_depend_on_tenant_and_reference(self):
        lines = [_line("1"), _line("1"), _line("2")]
        keys = build_import_keys(lines, self.tenant, "INV-1")
        self.assertEqual(len(set(keys)), 3)
        self.assertNotEqual(keys, build_import_keys(lines, self.other_tenant, "INV-1"))
        self.assertNotEqual(keys, build_import_keys(lines, self.tenant, "INV-2"))
        self.assertEqual(build_import_keys(lines, self.tenant, None), ["", "", ""])


class PartialFailureTests(IngestionTestBase):
    def test_failure_keeps_earlier_lines_and_stops_batch(self):
        original_resolve = services._UnitResolver.resolve

        def flaky_resolve(resolver, code):
            if code == "BAD":
                raise DatabaseError("disk full")
            return original_resolve(resolver, code)

        lines = [_line("1"), _line("2", unit_code="BAD"), _line("3")]
        with mock.patch.object(services._UnitResolver, "resolve", flaky_resolve):
            with self.assertRaises(IngestionError) as ctx:
                ingest_lines(lines, self.tenant, self.user, invoice_ref="123456")

        self.assertEqual(ctx.exception.failed_sku, "2")
        self.assertEqual([o.sku for o in ctx.exception.outcomes], ["1"])
        self.assertEqual(Ingredient.objects.get(tenant=self.tenant, sku="1").current_qty, Decimal("5"))
        self.assertFalse(Ingredient.objects.filter(tenant=self.tenant, sku__in=["2", "3"]).exists())
        self.assertEqual(Movement.objects.filter(tenant=self.tenant).count(), 1)


class QuantityBoundsTests(IngestionTestBase):
    def test_oversized_quantity_rejected_before_any_write(self):
        lines = [_line("1"), _line("2", quantity=1e13)]
        with self.assertRaises(IngestionError) as ctx:
            ingest_lines(lines, self.tenant, self.user)

        self.assertEqual(ctx.exception.failed_sku, "2")
        self.assertEqual(ctx.exception.outcomes, [])
        self.assertFalse(Ingredient.objects.filter(tenant=self.tenant).exists())
        self.assertEqual(Movement.objects.count(), 0)

    def test_unrepresentable_quantity_with_reference(self):
        for quantity in (1e30, float("inf"), float("nan")):
            with self.assertRaises(IngestionError):
                ingest_lines([_line("1", quantity=quantity)], self.tenant, self.user, invoice_ref="1234")
        self.assertEqual(Movement.objects.count(), 0)

    def test_quantity_rounding_to_zero_is_skipped(self):
        with self.assertRaises(NothingToApplyError):
            ingest_lines([_line("1", quantity=0.0004)], self.tenant, self.user)

        outcomes = ingest_lines([_line("1", quantity=0.0004), _line("2", quantity=0.0006)], self.tenant, self.user)

        self.assertEqual([o.sku for o in outcomes], ["2"])
        self.assertEqual(outcomes[0].quantity_added, 0.001)
        self.assertFalse(Ingredient.objects.filter(tenant=self.tenant, sku="1").exists())
        self.assertFalse(Movement.objects.filter(delta__lte=0).exists())

    def test_stock_overflow_stops_at_that_line(self):
        unit = Unit.objects.create(tenant=self.tenant, code="CS", name="Case")
        Ingredient.objects.create(
            tenant=self.tenant, sku="2", name="Full", base_unit=unit, current_qty=Decimal("999999999"),
        )
        with self.assertRaises(IngestionError) as ctx:
            ingest_lines([_line("1"), _line("2", quantity=5)], self.tenant, self.user)

        self.assertEqual(ctx.exception.failed_sku, "2")
        self.assertEqual([o.sku for o in ctx.exception.outcomes], ["1"])
        self.assertEqual(Ingredient.objects.get(tenant=self.tenant, sku="2").current_qty, Decimal("999999999"))
