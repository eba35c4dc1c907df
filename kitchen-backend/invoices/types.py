# invoices/types.py
"""
Request-scoped values passed between the invoice import stages.

None of these are persisted: parse -> normalize -> preview/apply.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RawInvoiceLine:
    """One table row as tokenized by a layout parser. No business validation."""
    sku: str
    qty_ordered: float
    qty_shipped: float
    invoice_unit: str
    description: str = ""
    pack_size: Optional[str] = None
    brand: Optional[str] = None
    dept_code: Optional[str] = None
    unit_cost: Optional[float] = None
    extended_cost: Optional[float] = None


@dataclass
class InvoiceParseResult:
    raw_text: str
    items: List[RawInvoiceLine] = field(default_factory=list)
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    purchase_order: Optional[str] = None


@dataclass
class NormalizedLine:
    sku: str
    name: str
    quantity: float
    unit_code: str
    category: str
    source_dept: Optional[str] = None
    brand: Optional[str] = None
    pack_size: Optional[str] = None
    unit_cost: Optional[float] = None
    extended_cost: Optional[float] = None
    apply: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("apply")
        return data


@dataclass
class PreviewLine(NormalizedLine):
    exists: bool = False
    ingredient_id: Optional[int] = None


@dataclass
class IngestionOutcome:
    sku: str
    name: str
    ingredient_id: int
    created: bool
    quantity_added: float
    unit_code: str
    category: str
    brand: Optional[str] = None
    pack_size: Optional[str] = None
    unit_cost: Optional[float] = None
    extended_cost: Optional[float] = None
    status: str = "applied"  # applied | duplicate
    movement_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
