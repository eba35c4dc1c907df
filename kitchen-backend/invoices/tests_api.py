"""
Invoice preview/apply endpoints, including the upload -> preview -> apply round trip.
"""
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from inventory.models import Ingredient, Movement, Unit
from invoices.api import InvoiceApplyView, InvoicePreviewView
from invoices.extract import InvoiceExtractionError
from invoices.services import IngestionError
from invoices.tests_parser import SAMPLE_INVOICE_TEXT
from tenants.models import Tenant, TenantUser

PREVIEW_URL = "/api/v1/invoices/preview"
APPLY_URL = "/api/v1/invoices/apply"


class InvoiceApiTestBase(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(username="chef", password="test-pass")
        self.tenant = Tenant.objects.create(name="Bistro", code="bistro")
        TenantUser.objects.create(tenant=self.tenant, user=self.user, role="chef")

    def _upload(self):
        return SimpleUploadedFile("invoice.pdf", b"%PDF-1.4 fake", content_type="application/pdf")

    def _preview(self, data=None, tenant=True):
        request = self.factory.post(PREVIEW_URL, data if data is not None else {"file": self._upload()}, format="multipart")
        force_authenticate(request, user=self.user)
        if tenant:
            request.tenant = self.tenant
        return InvoicePreviewView.as_view()(request)

    def _apply(self, payload, user=None, tenant=True):
        request = self.factory.post(APPLY_URL, payload, format="json")
        force_authenticate(request, user=user or self.user)
        if tenant:
            request.tenant = self.tenant
        return InvoiceApplyView.as_view()(request)


@mock.patch("invoices.api.extract_text", return_value=SAMPLE_INVOICE_TEXT)
class InvoicePreviewTests(InvoiceApiTestBase):
    def test_preview_returns_header_and_annotated_lines(self, extract):
        unit = Unit.objects.create(tenant=self.tenant, code="CS", name="Case")
        existing = Ingredient.objects.create(tenant=self.tenant, sku="10023", name="Widget", base_unit=unit)

        response = self._preview()

        self.assertEqual(response.status_code, 200)
        extract.assert_called_once_with(b"%PDF-1.4 fake")
        self.assertEqual(response.data["invoice"], {
            "number": "123456",
            "date": "01/15/2024",
            "purchase_order": "PO-778",
        })
        self.assertEqual(response.data["layout"], "columnar")

        items = response.data["items"]
        self.assertEqual([i["sku"] for i in items], ["10023", "20045"])
        self.assertTrue(items[0]["exists"])
        self.assertEqual(items[0]["ingredient_id"], existing.id)
        self.assertEqual(items[0]["name"], "Widget Assembly")
        self.assertEqual(items[0]["category"], "dry")
        self.assertFalse(items[1]["exists"])
        self.assertEqual(items[1]["quantity"], 2.0)
        self.assertEqual(items[1]["category"], "seafood")
        self.assertEqual(items[1]["pack_size"], "6X2 KG")
        self.assertNotIn("apply", items[0])

    def test_preview_writes_nothing(self, extract):
        self._preview()
        self.assertEqual(Ingredient.objects.count(), 0)
        self.assertEqual(Unit.objects.count(), 0)
        self.assertEqual(Movement.objects.count(), 0)

    def test_missing_file(self, extract):
        response = self._preview(data={})
        self.assertEqual(response.status_code, 400)
        extract.assert_not_called()

    @override_settings(INVOICE_UPLOAD_MAX_BYTES=4)
    def test_file_too_large(self, extract):
        response = self._preview()
        self.assertEqual(response.status_code, 400)
        extract.assert_not_called()

    def test_unreadable_pdf(self, extract):
        extract.side_effect = InvoiceExtractionError("Unable to read PDF")
        response = self._preview()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "Unable to read PDF")

    def test_no_line_items(self, extract):
        extract.return_value = "Invoice 123456\nno table here"
        response = self._preview()
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["error"], "Could not read any line items")

    def test_no_tenant(self, extract):
        loner = get_user_model().objects.create_user(username="loner", password="test-pass")
        request = self.factory.post(PREVIEW_URL, {"file": self._upload()}, format="multipart")
        force_authenticate(request, user=loner)
        response = InvoicePreviewView.as_view()(request)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "No tenant")

    def test_tenant_from_membership(self, extract):
        response = self._preview(tenant=False)
        self.assertEqual(response.status_code, 200)

    def test_unauthenticated(self, extract):
        request = self.factory.post(PREVIEW_URL, {"file": self._upload()}, format="multipart")
        response = InvoicePreviewView.as_view()(request)
        self.assertIn(response.status_code, (401, 403))


class InvoiceApplyTests(InvoiceApiTestBase):
    def _item(self, **overrides):
        item = {
            "sku": "10023",
            "name": "Widget Assembly",
            "quantity": 5,
            "unit_code": "cs",
            "category": "dry",
            "brand": "  ",
            "pack_size": "",
            "unit_cost": 12.5,
            "extended_cost": 62.5,
        }
        item.update(overrides)
        return item

    def test_apply_commits_lines(self):
        response = self._apply({"invoice": {"number": "123456"}, "items": [self._item()]})

        self.assertEqual(response.status_code, 200)
        outcome = response.data["items"][0]
        self.assertEqual(outcome["sku"], "10023")
        self.assertTrue(outcome["created"])
        self.assertEqual(outcome["unit_code"], "CS")
        self.assertIsNone(outcome["brand"])
        self.assertIsNone(outcome["pack_size"])
        self.assertEqual(outcome["status"], "applied")

        ingredient = Ingredient.objects.get(tenant=self.tenant, sku="10023")
        self.assertEqual(ingredient.current_qty, Decimal("5"))
        self.assertEqual(ingredient.base_unit.code, "CS")
        self.assertEqual(Movement.objects.get(ingredient=ingredient).reason, "Invoice 123456")

    def test_purchase_order_is_the_fallback_reference(self):
        self._apply({"invoice": {"number": "", "purchase_order": "PO-778"}, "items": [self._item()]})
        self.assertEqual(Movement.objects.get().reason, "Invoice PO-778")

    def test_reapply_same_invoice_reports_duplicates(self):
        payload = {"invoice": {"number": "123456"}, "items": [self._item()]}
        self._apply(payload)
        response = self._apply(payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["items"][0]["status"], "duplicate")
        self.assertEqual(Ingredient.objects.get(sku="10023").current_qty, Decimal("5"))

    def test_validation_errors(self):
        bad_payloads = [
            {"items": []},
            {},
            {"items": [self._item(quantity=0)]},
            {"items": [self._item(quantity=-1)]},
            {"items": [self._item(sku="  ")]},
            {"items": [self._item(name="")]},
            {"items": [self._item(unit_code="")]},
            {"items": [self._item(category="candy")]},
        ]
        for payload in bad_payloads:
            response = self._apply(payload)
            self.assertEqual(response.status_code, 400, payload)
        self.assertEqual(Movement.objects.count(), 0)

    def test_nothing_selected(self):
        response = self._apply({"items": [self._item(apply=False)]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "No items selected to apply")

    def test_quantity_bounds_rejected_before_any_write(self):
        payloads = [
            {"items": [self._item(sku="1"), self._item(sku="2", quantity=1e13)]},
            {"invoice": {"number": "1234"}, "items": [self._item(quantity=1e30)]},
            {"items": [self._item(quantity=0.0004)]},
        ]
        for payload in payloads:
            response = self._apply(payload)
            self.assertEqual(response.status_code, 400, payload)
            self.assertIn("quantity", response.data["errors"]["items"][-1])
        self.assertFalse(Ingredient.objects.exists())
        self.assertEqual(Movement.objects.count(), 0)

    def test_partial_failure_reports_committed_lines(self):
        committed = {"sku": "10023", "status": "applied"}
        error = IngestionError(
            "Failed to apply SKU 20045: boom",
            outcomes=[mock.Mock(to_dict=mock.Mock(return_value=committed))],
            failed_sku="20045",
        )
        with mock.patch("invoices.api.ingest_lines", side_effect=error):
            response = self._apply({"items": [self._item(), self._item(sku="20045")]})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["failed_sku"], "20045")
        self.assertEqual(response.data["items"], [committed])

    def test_no_tenant(self):
        loner = get_user_model().objects.create_user(username="loner", password="test-pass")
        response = self._apply({"items": [self._item()]}, user=loner, tenant=False)
        self.assertEqual(response.status_code, 400)


@mock.patch("invoices.api.extract_text", return_value=SAMPLE_INVOICE_TEXT)
class PreviewThenApplyTests(InvoiceApiTestBase):
    def test_round_trip(self, extract):
        preview = self._preview()
        self.assertEqual(preview.status_code, 200)

        items = preview.data["items"]
        items[1]["apply"] = False
        response = self._apply({"invoice": preview.data["invoice"], "items": items})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([o["sku"] for o in response.data["items"]], ["10023"])

        ingredient = Ingredient.objects.get(tenant=self.tenant, sku="10023")
        self.assertEqual(ingredient.name, "Widget Assembly")
        self.assertEqual(ingredient.current_qty, Decimal("5"))
        self.assertEqual(ingredient.base_unit.code, "CS")
        self.assertEqual(ingredient.base_unit.name, "Case")
        movement = Movement.objects.get(ingredient=ingredient)
        self.assertEqual(movement.delta, Decimal("5"))
        self.assertEqual(movement.reason, "Invoice 123456")
        self.assertFalse(Ingredient.objects.filter(sku="20045").exists())

        # second preview sees the new ingredient
        again = self._preview()
        self.assertTrue(again.data["items"][0]["exists"])
