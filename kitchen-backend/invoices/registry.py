# invoices/registry.py
"""
Layout registry for vendor invoice parsers.

Each vendor layout knows how to turn extracted invoice text into
raw line items. Supporting a new invoice template means registering a
new layout; the normalizer and the ingestion engine stay untouched.
"""

from typing import Dict, List, Optional

from .types import InvoiceParseResult


class InvoiceLayout:
    """
    Base class for all invoice layouts.

    Subclasses set ``code``/``name`` and implement ``parse``. ``parse`` must
    never raise for malformed text: unreadable rows are dropped and a text
    without a recognizable line-item table yields an empty ``items`` list.
    """
    code: str = ""  # e.g. "columnar"
    name: str = ""  # Human-readable name
    version: str = "1.0.0"

    def parse(self, text: str) -> InvoiceParseResult:
        raise NotImplementedError


# Global registry of layouts
_layout_registry: Dict[str, InvoiceLayout] = {}


def register_layout(layout: InvoiceLayout) -> InvoiceLayout:
    """
    Register a layout in the global registry.

    Raises:
        ValueError: If the layout has no code or the code is already registered
    """
    if not layout.code:
        raise ValueError("Layout must have a code")

    if layout.code in _layout_registry:
        raise ValueError(f"Layout with code '{layout.code}' is already registered")

    _layout_registry[layout.code] = layout
    return layout


def unregister_layout(code: str) -> None:
    _layout_registry.pop(code, None)


def get_layout(code: str) -> Optional[InvoiceLayout]:
    return _layout_registry.get(code)


def get_all_layouts() -> List[InvoiceLayout]:
    return list(_layout_registry.values())
