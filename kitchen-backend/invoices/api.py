# invoices/api.py
"""
Vendor invoice import endpoints.

POST /api/v1/invoices/preview  (multipart, field "file")
POST /api/v1/invoices/apply    (JSON)
"""
import logging

from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from tenants.models import Tenant, TenantUser

from .config import get_import_config
from .extract import InvoiceExtractionError, extract_text
from .normalizer import normalize_lines
from .parser import parse_invoice_text
from .serializers import ApplyRequestSerializer
from .services import IngestionError, NothingToApplyError, annotate_with_existing, ingest_lines
from .types import NormalizedLine

logger = logging.getLogger(__name__)


def _resolve_request_tenant(request):
    t = getattr(request, "tenant", None)
    if t:
        return t
    payload = getattr(request, "auth", None)
    if hasattr(payload, "get") and payload.get("tenant_id"):
        return get_object_or_404(Tenant, id=payload["tenant_id"], is_active=True)
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        membership = (
            TenantUser.objects.filter(user=user, is_active=True, tenant__is_active=True)
            .select_related("tenant")
            .order_by("id")
            .first()
        )
        if membership:
            return membership.tenant
    return None


class InvoicePreviewView(APIView):
    """
    Parse an uploaded invoice PDF and return the lines it would add, without
    touching stock. Each line says whether the SKU already exists for the tenant.
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        tenant = _resolve_request_tenant(request)
        if not tenant:
            return Response({"error": "No tenant"}, status=status.HTTP_400_BAD_REQUEST)

        upload = request.FILES.get("file")
        if not upload:
            return Response({"error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        max_bytes = settings.INVOICE_UPLOAD_MAX_BYTES
        if upload.size > max_bytes:
            return Response(
                {"error": f"File size exceeds maximum of {max_bytes / (1024 * 1024):.0f}MB"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            text = extract_text(upload.read())
        except InvoiceExtractionError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        config = get_import_config(tenant)
        parsed = parse_invoice_text(text, layout=config.layout)
        lines = normalize_lines(parsed.items, config)
        if not lines:
            logger.info(f"Invoice preview for tenant {tenant.code}: no line items in {upload.name}")
            return Response(
                {"error": "Could not read any line items"},
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        items = annotate_with_existing(lines, tenant)
        logger.info(
            f"Invoice preview for tenant {tenant.code}: {len(items)} lines "
            f"(invoice {parsed.invoice_number or '-'})"
        )
        return Response({
            "invoice": {
                "number": parsed.invoice_number,
                "date": parsed.invoice_date,
                "purchase_order": parsed.purchase_order,
            },
            "layout": config.layout,
            "items": [item.to_dict() for item in items],
        }, status=status.HTTP_200_OK)


class InvoiceApplyView(APIView):
    """
    Commit reviewed invoice lines: resolve or create units and ingredients,
    add the quantities and record a purchase Movement per line.

    Lines are committed one by one. On failure the response is 500 with the
    outcomes of the lines that were already applied.
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]

    def post(self, request):
        tenant = _resolve_request_tenant(request)
        if not tenant:
            return Response({"error": "No tenant"}, status=status.HTTP_400_BAD_REQUEST)

        serializer = ApplyRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        lines = [NormalizedLine(**item) for item in serializer.validated_data["items"]]
        invoice_ref = serializer.invoice_ref()

        try:
            outcomes = ingest_lines(
                lines, tenant, request.user,
                invoice_ref=invoice_ref,
                config=get_import_config(tenant),
            )
        except NothingToApplyError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except IngestionError as e:
            return Response({
                "error": str(e),
                "failed_sku": e.failed_sku,
                "items": [o.to_dict() for o in e.outcomes],
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({"items": [o.to_dict() for o in outcomes]}, status=status.HTTP_200_OK)
