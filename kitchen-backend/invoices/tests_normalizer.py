"""
Line normalization and import configuration.
"""
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from invoices.config import ImportConfig, get_import_config
from invoices.normalizer import normalize_line, normalize_lines, title_case
from invoices.types import RawInvoiceLine
from tenants.models import Tenant


def _raw(**overrides):
    data = dict(
        sku="10023",
        qty_ordered=5.0,
        qty_shipped=5.0,
        invoice_unit="CS",
        pack_size=None,
        brand="ACME",
        description="WIDGET assembly",
        dept_code="GR",
        unit_cost=12.5,
        extended_cost=62.5,
    )
    data.update(overrides)
    return RawInvoiceLine(**data)


class TitleCaseTests(SimpleTestCase):
    def test_words_are_capitalized(self):
        self.assertEqual(title_case("FRESH atlantic SALMON"), "Fresh Atlantic Salmon")
        self.assertEqual(title_case("  roma tomatoes 25lb "), "Roma Tomatoes 25lb")
        self.assertEqual(title_case("half-and-half"), "Half-And-Half")

    def test_empty(self):
        self.assertEqual(title_case(""), "")
        self.assertEqual(title_case(None), "")


class NormalizeLineTests(SimpleTestCase):
    def test_full_line(self):
        line = normalize_line(_raw())
        self.assertEqual(line.sku, "10023")
        self.assertEqual(line.name, "Widget Assembly")
        self.assertEqual(line.quantity, 5.0)
        self.assertEqual(line.unit_code, "CS")
        self.assertEqual(line.category, "dry")
        self.assertEqual(line.source_dept, "GR")
        self.assertEqual(line.brand, "ACME")
        self.assertEqual(line.unit_cost, 12.5)
        self.assertEqual(line.extended_cost, 62.5)

    def test_quantity_falls_back_to_ordered(self):
        self.assertEqual(normalize_line(_raw(qty_shipped=0, qty_ordered=3)).quantity, 3)
        self.assertEqual(normalize_line(_raw(qty_shipped=-1, qty_ordered=2)).quantity, 2)

    def test_no_positive_quantity_is_dropped(self):
        self.assertIsNone(normalize_line(_raw(qty_shipped=0, qty_ordered=0)))
        self.assertIsNone(normalize_line(_raw(qty_shipped=-2, qty_ordered=-2)))

    def test_name_fallbacks(self):
        self.assertEqual(normalize_line(_raw(description="", brand="FRESHCO")).name, "Freshco")
        self.assertEqual(normalize_line(_raw(description="", brand=None)).name, "10023")
        self.assertEqual(normalize_line(_raw(description="   ")).name, "Item 10023")

    def test_name_is_truncated(self):
        line = normalize_line(_raw(description="a" * 250))
        self.assertEqual(len(line.name), 200)

    def test_unit_code_is_upper_cased_with_default(self):
        self.assertEqual(normalize_line(_raw(invoice_unit="lb")).unit_code, "LB")
        self.assertEqual(normalize_line(_raw(invoice_unit="")).unit_code, "EA")

    def test_department_mapping(self):
        expected = {
            "SF": "seafood",
            "PR": "produce",
            "MT": "meat",
            "GR": "dry",
            "DA": "dairy",
            "BR": "bar",
            "ZZ": "dry",
            None: "dry",
        }
        for dept, category in expected.items():
            self.assertEqual(normalize_line(_raw(dept_code=dept)).category, category, dept)

    def test_normalize_lines_drops_unusable(self):
        lines = normalize_lines([_raw(), _raw(sku="2", qty_shipped=0, qty_ordered=0), _raw(sku="3")])
        self.assertEqual([line.sku for line in lines], ["10023", "3"])
        self.assertTrue(all(line.quantity > 0 for line in lines))


class ImportConfigTests(SimpleTestCase):
    def test_defaults(self):
        config = get_import_config()
        self.assertEqual(config.category_for("SF"), "seafood")
        self.assertEqual(config.unit_meta_for("KG"), {"name": "Kilograms", "precision": 3})
        self.assertEqual(config.unit_meta_for("KGA"), {"name": "Kilograms (Approx)", "precision": 3})
        self.assertEqual(config.unit_meta_for("EA"), {"name": "Each", "precision": 0})
        self.assertEqual(config.layout, "columnar")

    def test_unknown_unit(self):
        self.assertEqual(ImportConfig().unit_meta_for("XX"), {"name": "XX Unit", "precision": 2})
        self.assertEqual(ImportConfig().unit_meta_for("BX"), {"name": "BX Unit", "precision": 2})

    @override_settings(INVOICE_IMPORT={"department_categories": {"px": "produce"}, "default_category": "grocery"})
    def test_settings_overrides(self):
        config = get_import_config()
        self.assertEqual(config.category_for("PX"), "produce")
        self.assertEqual(config.category_for("ZZ"), "grocery")
        self.assertEqual(config.category_for("SF"), "seafood")

    @override_settings(INVOICE_IMPORT={"department_categories": {"GR": "grocery"}})
    def test_tenant_overrides_win(self):
        tenant = Tenant(name="Bistro", code="bistro", invoice_import_config={
            "department_categories": {"GR": "bar"},
            "unit_metadata": {"bg": {"name": "Bag", "precision": 0}},
        })
        config = get_import_config(tenant)
        self.assertEqual(config.category_for("GR"), "bar")
        self.assertEqual(config.unit_meta_for("BG"), {"name": "Bag", "precision": 0})
        line = normalize_line(_raw(dept_code="GR"), config)
        self.assertEqual(line.category, "bar")

    def test_invalid_overrides(self):
        bad_category = Tenant(code="a", invoice_import_config={"department_categories": {"GR": "candy"}})
        bad_precision = Tenant(code="b", invoice_import_config={"unit_metadata": {"BG": {"name": "Bag", "precision": 9}}})
        bad_unit = Tenant(code="c", invoice_import_config={"unit_metadata": {"BG": "Bag"}})
        for tenant in (bad_category, bad_precision, bad_unit):
            with self.assertRaises(ImproperlyConfigured):
                get_import_config(tenant)
