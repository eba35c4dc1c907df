# invoices/config.py
"""
Lookup tables used while normalizing invoice lines.

Built-in defaults are overridden by ``settings.INVOICE_IMPORT`` and then by
the tenant's ``invoice_import_config``. Recognized keys:

    {
        "department_categories": {"SF": "seafood", ...},
        "unit_metadata": {"LB": {"name": "Pounds", "precision": 2}, ...},
        "default_category": "dry",
        "default_unit_code": "EA",
        "layout": "columnar",
    }

Table entries are merged key by key, so an override only needs the rows it
changes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from inventory.models import IngredientCategory

DEFAULT_DEPARTMENT_CATEGORIES = {
    "SF": IngredientCategory.SEAFOOD,
    "PR": IngredientCategory.PRODUCE,
    "MT": IngredientCategory.MEAT,
    "GR": IngredientCategory.DRY,
    "DA": IngredientCategory.DAIRY,
    "BR": IngredientCategory.BAR,
}

DEFAULT_UNIT_METADATA = {
    "EA": {"name": "Each", "precision": 0},
    "CS": {"name": "Case", "precision": 0},
    "LB": {"name": "Pounds", "precision": 2},
    "KG": {"name": "Kilograms", "precision": 3},
    "KGA": {"name": "Kilograms (Approx)", "precision": 3},
    "G": {"name": "Grams", "precision": 0},
    "ML": {"name": "Milliliters", "precision": 0},
    "L": {"name": "Liters", "precision": 3},
}

UNKNOWN_UNIT_PRECISION = 2


@dataclass
class ImportConfig:
    department_categories: Dict[str, str] = field(
        default_factory=lambda: {k: v.value for k, v in DEFAULT_DEPARTMENT_CATEGORIES.items()}
    )
    unit_metadata: Dict[str, Dict[str, Any]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_UNIT_METADATA.items()}
    )
    default_category: str = IngredientCategory.DRY.value
    default_unit_code: str = "EA"
    layout: str = "columnar"

    def category_for(self, dept_code: Optional[str]) -> str:
        if not dept_code:
            return self.default_category
        return self.department_categories.get(dept_code.upper(), self.default_category)

    def unit_meta_for(self, code: str) -> Dict[str, Any]:
        """Name/precision for a unit code; unknown codes get "<code> Unit" at precision 2."""
        meta = self.unit_metadata.get(code.upper())
        if meta:
            return {"name": meta["name"], "precision": meta["precision"]}
        return {"name": f"{code} Unit", "precision": UNKNOWN_UNIT_PRECISION}


def _valid_category(value, source: str) -> str:
    value = str(value or "").strip().lower()
    if value not in IngredientCategory.values:
        raise ImproperlyConfigured(f"{source}: unknown ingredient category '{value}'")
    return value


def _apply_overrides(config: ImportConfig, overrides: Optional[Dict[str, Any]], source: str) -> None:
    if not overrides:
        return
    if not isinstance(overrides, dict):
        raise ImproperlyConfigured(f"{source}: expected a dict, got {type(overrides).__name__}")

    for dept, category in (overrides.get("department_categories") or {}).items():
        config.department_categories[str(dept).strip().upper()] = _valid_category(category, source)

    for code, meta in (overrides.get("unit_metadata") or {}).items():
        code = str(code).strip().upper()
        try:
            name = str(meta["name"]).strip()
            precision = int(meta.get("precision", UNKNOWN_UNIT_PRECISION))
        except (KeyError, TypeError, ValueError, AttributeError):
            raise ImproperlyConfigured(f"{source}: invalid unit metadata for '{code}'")
        if not name or not 0 <= precision <= 6:
            raise ImproperlyConfigured(f"{source}: invalid unit metadata for '{code}'")
        config.unit_metadata[code] = {"name": name, "precision": precision}

    if overrides.get("default_category"):
        config.default_category = _valid_category(overrides["default_category"], source)
    if overrides.get("default_unit_code"):
        config.default_unit_code = str(overrides["default_unit_code"]).strip().upper()
    if overrides.get("layout"):
        config.layout = str(overrides["layout"]).strip()


def get_import_config(tenant=None) -> ImportConfig:
    """
    Built-in defaults <- settings.INVOICE_IMPORT <- tenant.invoice_import_config.

    Raises:
        ImproperlyConfigured: If an override names an unknown category or a malformed unit entry
    """
    config = ImportConfig()
    _apply_overrides(config, getattr(settings, "INVOICE_IMPORT", None), "settings.INVOICE_IMPORT")
    if tenant is not None:
        _apply_overrides(
            config,
            getattr(tenant, "invoice_import_config", None),
            f"tenant {getattr(tenant, 'code', tenant)} invoice_import_config",
        )
    return config
