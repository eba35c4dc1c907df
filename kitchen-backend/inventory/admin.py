from django.contrib import admin
from .models import Unit, Ingredient, Movement


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "precision", "tenant", "is_active")
    list_filter = ("tenant", "is_active")
    search_fields = ("code", "name")


@admin.register(Ingredient)
class IngredientAdmin(admin.ModelAdmin):
    list_display = ("sku", "name", "tenant", "category", "base_unit", "current_qty", "par_level", "updated_at")
    list_filter = ("tenant", "category", "is_active")
    search_fields = ("sku", "name")


@admin.register(Movement)
class MovementAdmin(admin.ModelAdmin):
    list_display = ("created_at", "tenant", "ingredient", "type", "delta", "balance_after", "reason", "created_by")
    list_filter = ("tenant", "type", "created_at")
    search_fields = ("ingredient__sku", "ingredient__name", "reason", "import_key")
    date_hierarchy = "created_at"
    readonly_fields = ("tenant", "ingredient", "type", "delta", "balance_after", "reason", "import_key", "created_at", "created_by")

    def has_add_permission(self, request):
        # Movements are only written by stock-changing operations
        return False

    def has_change_permission(self, request, obj=None):
        return False
