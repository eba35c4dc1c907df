# invoices/normalizer.py
"""
Raw invoice rows -> inventory purchase lines.

Pure functions: no database access. Lookup tables come from ImportConfig.
"""
import logging
import re
from typing import Iterable, List, Optional

from .config import ImportConfig
from .types import NormalizedLine, RawInvoiceLine

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200

_WORD_START_RE = re.compile(r"\b\w", re.ASCII)


def title_case(value: str) -> str:
    """Lower-case everything, then upper-case the first character of each ASCII word."""
    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), (value or "").lower()).strip()


def _positive(value: Optional[float]) -> Optional[float]:
    if value is not None and value > 0:
        return value
    return None


def normalize_line(raw: RawInvoiceLine, config: Optional[ImportConfig] = None) -> Optional[NormalizedLine]:
    """
    Returns None when neither shipped nor ordered quantity is positive.
    """
    config = config or ImportConfig()

    quantity = _positive(raw.qty_shipped) or _positive(raw.qty_ordered)
    if quantity is None:
        logger.debug(f"Skipping SKU {raw.sku}: no positive quantity")
        return None

    name = title_case(raw.description or raw.brand or raw.sku)[:MAX_NAME_LENGTH]
    if not name:
        name = f"Item {raw.sku}"

    return NormalizedLine(
        sku=raw.sku,
        name=name,
        quantity=quantity,
        unit_code=(raw.invoice_unit or config.default_unit_code).upper(),
        category=config.category_for(raw.dept_code),
        source_dept=raw.dept_code,
        brand=raw.brand,
        pack_size=raw.pack_size,
        unit_cost=raw.unit_cost,
        extended_cost=raw.extended_cost,
    )


def normalize_lines(raws: Iterable[RawInvoiceLine], config: Optional[ImportConfig] = None) -> List[NormalizedLine]:
    config = config or ImportConfig()
    lines = []
    for raw in raws:
        line = normalize_line(raw, config)
        if line is not None:
            lines.append(line)
    return lines
