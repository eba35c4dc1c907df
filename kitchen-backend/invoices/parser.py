# invoices/parser.py
"""
Columnar vendor invoice parser.

Works on text already extracted from the PDF. The line-item table sits
between a header line ("Item Code  Qty Ordered  Qty Shipped  Unit ...")
and a "Group Summary" line. Every item row starts with a 5+ digit item
code; descriptions that wrap onto following lines are folded back into
the row they belong to.

Row layout, left to right:

    <sku> <qty ordered> <qty shipped> <unit> [<pack> <size>] <brand> <description...> <dept> <unit cost> <extended cost>
"""

import logging
import math
import re
from typing import List, Optional

from .registry import InvoiceLayout, get_layout, register_layout
from .types import InvoiceParseResult, RawInvoiceLine

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT = "columnar"

START_MARKER_RE = re.compile(r"^Item Code\s+Qty", re.IGNORECASE)
END_MARKER_RE = re.compile(r"^Group Summary", re.IGNORECASE)
ROW_START_RE = re.compile(r"^[0-9]{5,}")
PACK_SIZE_RE = re.compile(r"x", re.IGNORECASE)

INVOICE_NUMBER_RE = re.compile(r"Invoice\s+(\d{4,})", re.IGNORECASE)
INVOICE_DATE_RE = re.compile(r"Invoice Date\s+([0-9/]+)", re.IGNORECASE)
PURCHASE_ORDER_RE = re.compile(r"Purchase Order\s+([A-Z0-9-]+)", re.IGNORECASE)

NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


def parse_number(value: Optional[str]) -> Optional[float]:
    """
    Keep digits, '.', '-' and parse what is left.

    "$1,234.50" -> 1234.5, "N/A" -> None. Non-finite results are None, never 0.
    """
    if not value:
        return None
    cleaned = NON_NUMERIC_RE.sub("", value)
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _match_single(text: str, pattern: re.Pattern) -> Optional[str]:
    m = pattern.search(text)
    return m.group(1) if m else None


class ColumnarInvoiceLayout(InvoiceLayout):
    code = DEFAULT_LAYOUT
    name = "Columnar (Item Code ... Group Summary)"
    version = "1.0.0"

    min_tokens = 10

    def parse(self, text: str) -> InvoiceParseResult:
        text = (text or "").replace("\r", "")
        return InvoiceParseResult(
            raw_text=text,
            invoice_number=_match_single(text, INVOICE_NUMBER_RE),
            invoice_date=_match_single(text, INVOICE_DATE_RE),
            purchase_order=_match_single(text, PURCHASE_ORDER_RE),
            items=self.extract_line_items(text),
        )

    def extract_line_items(self, text: str) -> List[RawInvoiceLine]:
        lines = [line.strip() for line in text.split("\n") if line.strip()]

        start_idx = next((i for i, line in enumerate(lines) if START_MARKER_RE.search(line)), -1)
        end_idx = next((i for i, line in enumerate(lines) if END_MARKER_RE.search(line)), -1)
        if start_idx == -1 or end_idx == -1 or end_idx <= start_idx:
            logger.debug(f"No line-item table found (start={start_idx}, end={end_idx})")
            return []

        items = []
        for row in self.group_rows(lines[start_idx + 1:end_idx]):
            parsed = self.parse_row(row)
            if parsed is None:
                logger.debug(f"Dropped unreadable invoice row: {row!r}")
                continue
            items.append(parsed)
        return items

    def group_rows(self, table_lines: List[str]) -> List[str]:
        """Rebuild logical rows; lines before the first item code are ignored."""
        rows: List[str] = []
        current: List[str] = []
        for line in table_lines:
            if ROW_START_RE.match(line):
                if current:
                    rows.append(" ".join(current).strip())
                current = [line]
                continue
            if current:
                current.append(line)
        if current:
            rows.append(" ".join(current).strip())
        return rows

    def parse_row(self, row: str) -> Optional[RawInvoiceLine]:
        tokens = row.split()
        if len(tokens) < self.min_tokens:
            return None

        extended_cost = parse_number(tokens.pop())
        unit_cost = parse_number(tokens.pop())
        dept_code = tokens.pop()

        sku = tokens.pop(0)
        qty_ordered = parse_number(tokens.pop(0))
        qty_shipped = parse_number(tokens.pop(0))
        invoice_unit = tokens.pop(0)

        if not sku or not invoice_unit or qty_ordered is None or qty_shipped is None:
            return None

        pack_size = None
        if len(tokens) >= 2 and PACK_SIZE_RE.search(tokens[0]):
            pack_size = f"{tokens.pop(0)} {tokens.pop(0)}"

        brand = tokens.pop(0) if tokens else None
        description = " ".join(tokens).strip()

        return RawInvoiceLine(
            sku=sku,
            qty_ordered=qty_ordered,
            qty_shipped=qty_shipped,
            invoice_unit=invoice_unit,
            pack_size=pack_size,
            brand=brand,
            description=description,
            dept_code=dept_code,
            unit_cost=unit_cost,
            extended_cost=extended_cost,
        )


def register_builtin_layouts() -> None:
    if get_layout(DEFAULT_LAYOUT) is None:
        register_layout(ColumnarInvoiceLayout())


def parse_invoice_text(text: str, layout: Optional[str] = None) -> InvoiceParseResult:
    """
    Parse extracted invoice text with the given layout (default: columnar).

    Raises:
        ValueError: If the layout code is not registered
    """
    code = layout or DEFAULT_LAYOUT
    parser = get_layout(code)
    if parser is None:
        if code != DEFAULT_LAYOUT:
            raise ValueError(f"Unknown invoice layout '{code}'")
        register_builtin_layouts()
        parser = get_layout(code)
    return parser.parse(text)
