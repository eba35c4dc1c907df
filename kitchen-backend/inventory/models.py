# kitchen-backend/inventory/models.py
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from common.models import TimeStampedModel


class IngredientCategory(models.TextChoices):
    DRY = "dry", "Dry goods"
    PRODUCE = "produce", "Produce"
    MEAT = "meat", "Meat"
    DAIRY = "dairy", "Dairy"
    BAR = "bar", "Bar"
    SEAFOOD = "seafood", "Seafood"
    GROCERY = "grocery", "Grocery"


class Unit(TimeStampedModel):
    """
    Per-tenant measurement unit (EA, CS, KG...). Code is stored upper-cased.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="units", db_index=True)
    code = models.CharField(max_length=16)
    name = models.CharField(max_length=80)
    precision = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(6)],
        help_text="Decimal places to display/accept for quantities in this unit",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "code"], name="uniq_unit_code_per_tenant"),
            models.CheckConstraint(condition=Q(precision__lte=6), name="unit_precision_max_6"),
        ]

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.code} ({self.name})"


class Ingredient(TimeStampedModel):
    """
    Stock-keeping item of a restaurant. current_qty only moves together with a Movement row.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="ingredients", db_index=True)
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=16, choices=IngredientCategory.choices, default=IngredientCategory.DRY)
    base_unit = models.ForeignKey("inventory.Unit", on_delete=models.PROTECT, related_name="ingredients")
    par_level = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    current_qty = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        indexes = [models.Index(fields=["tenant", "category"], name="inventory_ingr_tenant_cat_idx")]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "sku"], name="uniq_ingredient_sku_per_tenant"),
            models.CheckConstraint(condition=Q(current_qty__gte=0), name="ingredient_current_qty_non_negative"),
            models.CheckConstraint(condition=Q(par_level__gte=0), name="ingredient_par_level_non_negative"),
        ]

    def __str__(self):
        return f"{self.sku} {self.name} – qty={self.current_qty}"


class Movement(models.Model):
    """
    Immutable audit log: every change in Ingredient.current_qty.
    """
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    USAGE = "usage"
    TYPE_CHOICES = [
        (PURCHASE, "Purchase"),
        (ADJUSTMENT, "Adjustment"),
        (USAGE, "Usage"),
    ]
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, db_index=True)
    ingredient = models.ForeignKey("inventory.Ingredient", on_delete=models.PROTECT, related_name="movements")
    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    delta = models.DecimalField(max_digits=12, decimal_places=3)  # signed
    balance_after = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    reason = models.CharField(max_length=255, blank=True)
    import_key = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Dedup key for invoice imports (empty when the import had no invoice reference)",
    )

    created_at = models.DateTimeField(default=timezone.now)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["tenant", "ingredient", "created_at"], name="inventory_mov_tenant_ingr_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "import_key"],
                condition=Q(import_key__gt=""),
                name="uniq_movement_import_key_per_tenant",
            ),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Movement rows are append-only")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Movement {self.ingredient_id} {self.delta} ({self.type})"
