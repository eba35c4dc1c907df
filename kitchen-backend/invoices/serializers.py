# invoices/serializers.py
import math

from rest_framework import serializers

from inventory.models import IngredientCategory


class InvoiceRefSerializer(serializers.Serializer):
    number = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    date = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=32)
    purchase_order = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)


class ApplyLineSerializer(serializers.Serializer):
    """One reviewed invoice line. Blank brand/pack size become null; unit codes are upper-cased."""
    sku = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=200)
    quantity = serializers.FloatField(min_value=0.001, max_value=999_999_999.999)
    unit_code = serializers.CharField(max_length=16)
    category = serializers.ChoiceField(choices=IngredientCategory.choices)
    source_dept = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=16)
    brand = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    pack_size = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    unit_cost = serializers.FloatField(required=False, allow_null=True)
    extended_cost = serializers.FloatField(required=False, allow_null=True)
    apply = serializers.BooleanField(allow_null=True, default=None)

    def validate_quantity(self, value):
        if value is None or not math.isfinite(value) or not value > 0:
            raise serializers.ValidationError("Quantity must be greater than 0")
        return value

    def validate_unit_code(self, value):
        return value.strip().upper()

    def validate_brand(self, value):
        return (value or "").strip() or None

    def validate_pack_size(self, value):
        return (value or "").strip() or None

    def validate_source_dept(self, value):
        return (value or "").strip() or None


class ApplyRequestSerializer(serializers.Serializer):
    invoice = InvoiceRefSerializer(required=False, allow_null=True)
    items = ApplyLineSerializer(many=True, allow_empty=False)

    def invoice_ref(self):
        """Invoice number, else purchase order, else None."""
        invoice = self.validated_data.get("invoice") or {}
        return (invoice.get("number") or "").strip() or (invoice.get("purchase_order") or "").strip() or None
