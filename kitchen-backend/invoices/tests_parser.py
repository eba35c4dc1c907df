"""
Invoice text parsing: table detection, row folding, tokenization and header fields.
"""
from unittest import mock

from django.test import SimpleTestCase

from invoices.extract import InvoiceExtractionError, extract_text
from invoices.parser import ColumnarInvoiceLayout, parse_invoice_text, parse_number
from invoices.registry import InvoiceLayout, get_all_layouts, get_layout, register_layout, unregister_layout
from invoices.types import InvoiceParseResult, RawInvoiceLine

SAMPLE_INVOICE_TEXT = "\n".join([
    "FRESH COAST FOODSERVICE",
    "Invoice 123456",
    "Invoice Date 01/15/2024",
    "Purchase Order PO-778",
    "Item Code  Qty Ordered  Qty Shipped  Unit  Pack Size  Brand  Description  Dept  Unit Cost  Ext Cost",
    "continued from previous page",
    "10023 5 5 CS ACME Widget Assembly GR 12.50 62.50",
    "20045 2 0 LB 6X2 KG FRESHCO Atlantic Salmon",
    "Fillet SF $8.25 $16.50",
    "30011 1 1 EA SHORT ROW GR 1.00",
    "40001 N/A 1 EA SYSCO Paper Towels GR 1.00 2.00",
    "Group Summary",
    "50000 9 9 EA AFTER Summary Row GR 1.00 9.00",
])


class ParseNumberTests(SimpleTestCase):
    def test_strips_currency_symbols_and_separators(self):
        self.assertEqual(parse_number("$1,234.50"), 1234.5)
        self.assertEqual(parse_number("-3.25"), -3.25)
        self.assertEqual(parse_number("12"), 12.0)

    def test_unparseable_values_are_absent_not_zero(self):
        self.assertIsNone(parse_number("N/A"))
        self.assertIsNone(parse_number(""))
        self.assertIsNone(parse_number(None))
        self.assertIsNone(parse_number("-"))
        self.assertIsNone(parse_number("1.2.3"))


class ColumnarLayoutTests(SimpleTestCase):
    def setUp(self):
        self.result = parse_invoice_text(SAMPLE_INVOICE_TEXT)

    def test_header_fields(self):
        self.assertEqual(self.result.invoice_number, "123456")
        self.assertEqual(self.result.invoice_date, "01/15/2024")
        self.assertEqual(self.result.purchase_order, "PO-778")

    def test_only_valid_rows_inside_table_are_kept(self):
        # short row, bad quantity and the row after "Group Summary" are dropped
        self.assertEqual([item.sku for item in self.result.items], ["10023", "20045"])

    def test_plain_row_tokenization(self):
        item = self.result.items[0]
        self.assertEqual(item, RawInvoiceLine(
            sku="10023",
            qty_ordered=5.0,
            qty_shipped=5.0,
            invoice_unit="CS",
            pack_size=None,
            brand="ACME",
            description="Widget Assembly",
            dept_code="GR",
            unit_cost=12.5,
            extended_cost=62.5,
        ))

    def test_wrapped_row_with_pack_size(self):
        item = self.result.items[1]
        self.assertEqual(item.pack_size, "6X2 KG")
        self.assertEqual(item.brand, "FRESHCO")
        self.assertEqual(item.description, "Atlantic Salmon Fillet")
        self.assertEqual(item.dept_code, "SF")
        self.assertEqual(item.qty_ordered, 2.0)
        self.assertEqual(item.qty_shipped, 0.0)
        self.assertEqual(item.unit_cost, 8.25)
        self.assertEqual(item.extended_cost, 16.5)

    def test_unparseable_costs_are_none(self):
        text = "\n".join([
            "Item Code Qty Ordered",
            "10023 5 5 CS ACME Widget Assembly GR TBD --",
            "Group Summary",
        ])
        item = parse_invoice_text(text).items[0]
        self.assertIsNone(item.unit_cost)
        self.assertIsNone(item.extended_cost)

    def test_carriage_returns_are_ignored(self):
        text = SAMPLE_INVOICE_TEXT.replace("\n", "\r\n")
        self.assertEqual([i.sku for i in parse_invoice_text(text).items], ["10023", "20045"])

    def test_missing_markers_yield_no_items(self):
        no_start = "10023 5 5 CS ACME Widget Assembly GR 12.50 62.50\nGroup Summary"
        no_end = "Item Code Qty\n10023 5 5 CS ACME Widget Assembly GR 12.50 62.50"
        self.assertEqual(parse_invoice_text(no_start).items, [])
        self.assertEqual(parse_invoice_text(no_end).items, [])

    def test_end_marker_before_start_yields_no_items(self):
        text = "\n".join([
            "Group Summary",
            "Item Code Qty",
            "10023 5 5 CS ACME Widget Assembly GR 12.50 62.50",
        ])
        self.assertEqual(parse_invoice_text(text).items, [])

    def test_absent_header_fields_are_none(self):
        result = parse_invoice_text("nothing useful here")
        self.assertIsNone(result.invoice_number)
        self.assertIsNone(result.invoice_date)
        self.assertIsNone(result.purchase_order)
        self.assertEqual(result.items, [])

    def test_garbage_never_raises(self):
        for text in ["", "\n\n\n", "Item Code Qty\n\x00\x01\nGroup Summary", None]:
            result = parse_invoice_text(text)
            self.assertEqual(result.items, [])

    def test_row_needs_ten_tokens(self):
        layout = ColumnarInvoiceLayout()
        self.assertIsNone(layout.parse_row("10023 5 5 CS ACME Widget GR 12.50 62.50"))
        self.assertIsNotNone(layout.parse_row("10023 5 5 CS ACME Widget Assembly GR 12.50 62.50"))


class LayoutRegistryTests(SimpleTestCase):
    class FixedLayout(InvoiceLayout):
        code = "fixed-test"
        name = "Fixed test layout"

        def parse(self, text):
            return InvoiceParseResult(raw_text=text, invoice_number="42")

    def setUp(self):
        self.addCleanup(unregister_layout, self.FixedLayout.code)
        register_layout(self.FixedLayout())

    def test_columnar_is_registered_by_default(self):
        self.assertIsInstance(get_layout("columnar"), ColumnarInvoiceLayout)
        self.assertIn("fixed-test", [layout.code for layout in get_all_layouts()])

    def test_select_layout_by_code(self):
        self.assertEqual(parse_invoice_text("x", layout="fixed-test").invoice_number, "42")

    def test_duplicate_code_is_rejected(self):
        with self.assertRaises(ValueError):
            register_layout(self.FixedLayout())

    def test_layout_without_code_is_rejected(self):
        with self.assertRaises(ValueError):
            register_layout(InvoiceLayout())

    def test_unknown_layout(self):
        with self.assertRaises(ValueError):
            parse_invoice_text("x", layout="does-not-exist")


class ExtractTextTests(SimpleTestCase):
    def test_empty_bytes(self):
        with self.assertRaises(InvoiceExtractionError):
            extract_text(b"")

    def test_not_a_pdf(self):
        with self.assertRaises(InvoiceExtractionError):
            extract_text(b"this is not a pdf")

    def test_pages_are_joined(self):
        pages = [mock.Mock(), mock.Mock(), mock.Mock()]
        pages[0].extract_text.return_value = "Invoice 123456\r"
        pages[1].extract_text.return_value = None
        pages[2].extract_text.return_value = "Group Summary"
        pdf = mock.MagicMock()
        pdf.__enter__.return_value.pages = pages
        with mock.patch("invoices.extract.pdfplumber.open", return_value=pdf):
            self.assertEqual(extract_text(b"%PDF-1.4"), "Invoice 123456\n\nGroup Summary")
