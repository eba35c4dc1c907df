# invoices/services.py
"""
Invoice preview annotation and the ingestion engine.

Ingestion is a sequence of independently committed lines, not one batch
transaction: if line N fails, lines 0..N-1 stay applied and the caller gets
their outcomes on the raised IngestionError.
"""
import hashlib
import logging
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Sequence

from django.db import IntegrityError, transaction

from inventory.models import Ingredient, Movement, Unit

from .config import ImportConfig
from .types import IngestionOutcome, NormalizedLine, PreviewLine

logger = logging.getLogger(__name__)

QTY_QUANT = Decimal("0.001")
# Largest value a Decimal(max_digits=12, decimal_places=3) column holds
MAX_QTY = Decimal("999999999.999")

STATUS_APPLIED = "applied"
STATUS_DUPLICATE = "duplicate"


class NothingToApplyError(Exception):
    """Raised when no line is selected with a positive quantity"""
    pass


class IngestionError(Exception):
    """
    A line failed to persist. ``outcomes`` holds the lines committed before it,
    ``failed_sku`` the line that stopped the batch.
    """

    def __init__(self, message, outcomes=None, failed_sku=None):
        super().__init__(message)
        self.outcomes = list(outcomes or [])
        self.failed_sku = failed_sku


def _to_qty(value) -> Decimal:
    """
    Quantize to the stored precision.

    Raises:
        ValueError: If the value is not finite or does not fit the quantity columns
    """
    try:
        qty = Decimal(str(value)).quantize(QTY_QUANT)
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid quantity {value!r}") from e
    if not qty.is_finite() or abs(qty) > MAX_QTY:
        raise ValueError(f"Quantity {value!r} is out of range")
    return qty


def annotate_with_existing(lines: Sequence[NormalizedLine], tenant) -> List[PreviewLine]:
    """
    Mark each line with whether the tenant already stocks its SKU. Read-only, one query.
    """
    skus = {line.sku for line in lines}
    existing: Dict[str, int] = {}
    if skus:
        existing = dict(
            Ingredient.objects.filter(tenant=tenant, sku__in=skus).values_list("sku", "id")
        )

    annotated = []
    for line in lines:
        ingredient_id = existing.get(line.sku)
        annotated.append(PreviewLine(
            **line.to_dict(),
            exists=ingredient_id is not None,
            ingredient_id=ingredient_id,
        ))
    return annotated


def build_import_keys(lines: Sequence[NormalizedLine], tenant, invoice_ref: Optional[str]) -> List[str]:
    """
    One dedup key per line, or "" for every line when there is no invoice reference.

    A sku/quantity pair repeated on the same invoice gets an ordinal so both
    occurrences keep distinct keys.
    """
    if not invoice_ref:
        return ["" for _ in lines]

    seen = defaultdict(int)
    keys = []
    for line in lines:
        qty = _to_qty(line.quantity)
        ordinal = seen[(line.sku, qty)]
        seen[(line.sku, qty)] += 1
        raw = f"{tenant.id}|{invoice_ref}|{line.sku}|{qty}|{ordinal}"
        keys.append(hashlib.sha256(raw.encode("utf-8")).hexdigest())
    return keys


def _movement_reason(invoice_ref: Optional[str], user) -> str:
    if invoice_ref:
        return f"Invoice {invoice_ref}"[:255]
    return f"Invoice import by {getattr(user, 'pk', None)}"


class _UnitResolver:
    """Per-call cache of tenant units, created on first use."""

    def __init__(self, tenant, config: ImportConfig):
        self.tenant = tenant
        self.config = config
        self._cache: Dict[str, Unit] = {}

    def resolve(self, code: str) -> Unit:
        code = code.upper()
        unit = self._cache.get(code)
        if unit is not None:
            return unit

        meta = self.config.unit_meta_for(code)
        unit, created = Unit.objects.get_or_create(
            tenant=self.tenant, code=code,
            defaults={"name": meta["name"], "precision": meta["precision"]},
        )
        if created:
            logger.info(f"Created unit {code} ({meta['name']}) for tenant {self.tenant.code}")
        self._cache[code] = unit
        return unit

    def clear(self):
        self._cache.clear()


def _apply_line(line: NormalizedLine, qty: Decimal, tenant, user, units: _UnitResolver, reason: str, import_key: str) -> IngestionOutcome:
    if import_key:
        existing = Movement.objects.filter(tenant=tenant, import_key=import_key).first()
        if existing is not None:
            return _duplicate_outcome(line, existing)

    with transaction.atomic():
        unit = units.resolve(line.unit_code)

        ingredient, created = Ingredient.objects.select_for_update().get_or_create(
            tenant=tenant, sku=line.sku,
            defaults={
                "name": line.name,
                "category": line.category,
                "base_unit": unit,
                "par_level": 0,
                "current_qty": 0,
            },
        )
        if created:
            logger.info(f"Created ingredient {line.sku} ({line.name}) for tenant {tenant.code}")

        new_qty = Decimal(ingredient.current_qty or 0) + qty
        if new_qty > MAX_QTY:
            raise ValueError(f"Stock for SKU {line.sku} would exceed {MAX_QTY}")
        ingredient.current_qty = new_qty
        ingredient.save(update_fields=["current_qty", "updated_at"])
        ingredient.refresh_from_db(fields=["current_qty"])

        movement = Movement.objects.create(
            tenant=tenant,
            ingredient=ingredient,
            type=Movement.PURCHASE,
            delta=qty,
            balance_after=ingredient.current_qty,
            reason=reason,
            import_key=import_key,
            created_by=user if getattr(user, "pk", None) else None,
        )

    return IngestionOutcome(
        sku=line.sku,
        name=line.name,
        ingredient_id=ingredient.id,
        created=created,
        quantity_added=float(qty),
        unit_code=line.unit_code,
        category=line.category,
        brand=line.brand,
        pack_size=line.pack_size,
        unit_cost=line.unit_cost,
        extended_cost=line.extended_cost,
        status=STATUS_APPLIED,
        movement_id=movement.id,
    )


def _duplicate_outcome(line: NormalizedLine, movement: Movement) -> IngestionOutcome:
    return IngestionOutcome(
        sku=line.sku,
        name=line.name,
        ingredient_id=movement.ingredient_id,
        created=False,
        quantity_added=0.0,
        unit_code=line.unit_code,
        category=line.category,
        brand=line.brand,
        pack_size=line.pack_size,
        unit_cost=line.unit_cost,
        extended_cost=line.extended_cost,
        status=STATUS_DUPLICATE,
        movement_id=movement.id,
    )


def ingest_lines(
    lines: Iterable[NormalizedLine],
    tenant,
    user,
    invoice_ref: Optional[str] = None,
    config: Optional[ImportConfig] = None,
) -> List[IngestionOutcome]:
    """
    Apply the selected invoice lines to the tenant's stock.

    Args:
        lines: Normalized lines; ``apply=False`` lines and lines whose quantity rounds to 0 are skipped
        tenant: Tenant instance
        user: Acting user (recorded on each Movement)
        invoice_ref: Invoice number or purchase order; enables duplicate detection
        config: Import configuration (unit names/precision for new units)

    Returns:
        One IngestionOutcome per applied line, in input order

    Raises:
        NothingToApplyError: If nothing is selected
        IngestionError: If a quantity is out of range (nothing is written) or a line
            fails to persist (earlier lines stay committed)
    """
    # Every quantity is validated before the first write.
    selected = []
    for ln in lines:
        if ln.apply is False:
            continue
        try:
            qty = _to_qty(ln.quantity)
        except ValueError as e:
            raise IngestionError(f"Failed to apply SKU {ln.sku}: {e}", [], ln.sku) from e
        if qty > 0:
            selected.append((ln, qty))
    if not selected:
        raise NothingToApplyError("No items selected to apply")

    config = config or ImportConfig()
    units = _UnitResolver(tenant, config)
    reason = _movement_reason(invoice_ref, user)
    keys = build_import_keys([ln for ln, _ in selected], tenant, invoice_ref)

    outcomes: List[IngestionOutcome] = []
    for (line, qty), import_key in zip(selected, keys):
        try:
            outcome = _apply_line(line, qty, tenant, user, units, reason, import_key)
        except IntegrityError as e:
            # A concurrent apply of the same invoice may have won the key.
            units.clear()
            existing = None
            if import_key:
                existing = Movement.objects.filter(tenant=tenant, import_key=import_key).first()
            if existing is None:
                logger.error(f"Invoice ingestion failed on SKU {line.sku}: {e}", exc_info=True)
                raise IngestionError(f"Failed to apply SKU {line.sku}: {e}", outcomes, line.sku) from e
            outcome = _duplicate_outcome(line, existing)
        except Exception as e:
            logger.error(f"Invoice ingestion failed on SKU {line.sku}: {e}", exc_info=True)
            raise IngestionError(f"Failed to apply SKU {line.sku}: {e}", outcomes, line.sku) from e

        if outcome.status == STATUS_DUPLICATE:
            logger.info(f"Skipped duplicate invoice line {line.sku} (movement {outcome.movement_id})")
        outcomes.append(outcome)

    applied = sum(1 for o in outcomes if o.status == STATUS_APPLIED)
    logger.info(
        f"Invoice {invoice_ref or '-'} applied for tenant {tenant.code}: "
        f"{applied} applied, {len(outcomes) - applied} duplicate"
    )
    return outcomes
