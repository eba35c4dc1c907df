"""
Dry-run the invoice preview pipeline on a local file and print JSON.

Usage:
    python manage.py parse_invoice invoice.pdf
    python manage.py parse_invoice extracted.txt --text
    python manage.py parse_invoice invoice.pdf --tenant <tenant_code>

Nothing is written. With --tenant the tenant's import settings are used and
lines are marked with whether the SKU already exists.
"""
import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from invoices.config import get_import_config
from invoices.extract import InvoiceExtractionError, extract_text
from invoices.normalizer import normalize_lines
from invoices.parser import parse_invoice_text
from invoices.services import annotate_with_existing
from tenants.models import Tenant


class Command(BaseCommand):
    help = "Parse a vendor invoice (PDF or extracted text) and print the normalized lines"

    def add_arguments(self, parser):
        parser.add_argument("path", help="Invoice PDF (or text file with --text)")
        parser.add_argument("--text", action="store_true", help="Treat the file as already-extracted text")
        parser.add_argument("--tenant", help="Tenant code for import settings and existing-SKU lookup")
        parser.add_argument("--layout", help="Invoice layout code (default: from import settings)")
        parser.add_argument("--raw", action="store_true", help="Include raw parsed rows in the output")

    def handle(self, *args, **options):
        path = Path(options["path"])
        if not path.is_file():
            raise CommandError(f"File not found: {path}")

        tenant = None
        if options.get("tenant"):
            try:
                tenant = Tenant.objects.get(code=options["tenant"])
            except Tenant.DoesNotExist:
                raise CommandError(f"Tenant '{options['tenant']}' does not exist")

        if options["text"]:
            text = path.read_text(encoding="utf-8", errors="replace")
        else:
            try:
                text = extract_text(path.read_bytes())
            except InvoiceExtractionError as e:
                raise CommandError(str(e))

        config = get_import_config(tenant)
        layout = options.get("layout") or config.layout
        try:
            parsed = parse_invoice_text(text, layout=layout)
        except ValueError as e:
            raise CommandError(str(e))

        lines = normalize_lines(parsed.items, config)
        if tenant is not None:
            items = [line.to_dict() for line in annotate_with_existing(lines, tenant)]
        else:
            items = [line.to_dict() for line in lines]

        result = {
            "invoice": {
                "number": parsed.invoice_number,
                "date": parsed.invoice_date,
                "purchase_order": parsed.purchase_order,
            },
            "layout": layout,
            "items": items,
        }
        if options["raw"]:
            result["raw_items"] = [vars(raw) for raw in parsed.items]

        self.stdout.write(json.dumps(result, indent=2))
        if not lines:
            self.stderr.write(self.style.WARNING("Could not read any line items"))
