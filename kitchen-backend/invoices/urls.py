# invoices/urls.py
from django.urls import path

from .api import InvoiceApplyView, InvoicePreviewView

app_name = "invoices"

urlpatterns = [
    path("preview", InvoicePreviewView.as_view(), name="invoice-preview"),
    path("apply", InvoiceApplyView.as_view(), name="invoice-apply"),
]
