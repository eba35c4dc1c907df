import json
import tempfile
from io import StringIO
from pathlib import Path
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from inventory.models import Ingredient, Movement, Unit
from invoices.extract import InvoiceExtractionError
from invoices.tests_parser import SAMPLE_INVOICE_TEXT
from tenants.models import Tenant


class ParseInvoiceCommandTests(TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.text_path = Path(tmp.name) / "invoice.txt"
        self.text_path.write_text(SAMPLE_INVOICE_TEXT, encoding="utf-8")
        self.pdf_path = Path(tmp.name) / "invoice.pdf"
        self.pdf_path.write_bytes(b"%PDF-1.4 fake")

    def _run(self, *args):
        out = StringIO()
        call_command("parse_invoice", *args, stdout=out, stderr=StringIO())
        return json.loads(out.getvalue())

    def test_text_file(self):
        result = self._run(str(self.text_path), "--text")
        self.assertEqual(result["invoice"]["number"], "123456")
        self.assertEqual([i["sku"] for i in result["items"]], ["10023", "20045"])
        self.assertNotIn("exists", result["items"][0])

    def test_pdf_goes_through_extractor(self):
        with mock.patch("invoices.management.commands.parse_invoice.extract_text", return_value=SAMPLE_INVOICE_TEXT) as extract:
            result = self._run(str(self.pdf_path), "--raw")
        extract.assert_called_once_with(b"%PDF-1.4 fake")
        self.assertEqual(len(result["raw_items"]), 2)

    def test_unreadable_pdf(self):
        with mock.patch(
            "invoices.management.commands.parse_invoice.extract_text",
            side_effect=InvoiceExtractionError("Unable to read PDF"),
        ):
            with self.assertRaises(CommandError):
                self._run(str(self.pdf_path))

    def test_tenant_annotation_is_read_only(self):
        tenant = Tenant.objects.create(name="Bistro", code="bistro")
        unit = Unit.objects.create(tenant=tenant, code="CS", name="Case")
        Ingredient.objects.create(tenant=tenant, sku="10023", name="Widget", base_unit=unit)

        result = self._run(str(self.text_path), "--text", "--tenant", "bistro")

        self.assertEqual([i["exists"] for i in result["items"]], [True, False])
        self.assertEqual(Ingredient.objects.count(), 1)
        self.assertEqual(Movement.objects.count(), 0)

    def test_missing_file_and_unknown_layout(self):
        with self.assertRaises(CommandError):
            self._run("/nonexistent/invoice.pdf")
        with self.assertRaises(CommandError):
            self._run(str(self.text_path), "--text", "--layout", "nope")
