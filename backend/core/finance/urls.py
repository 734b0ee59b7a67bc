from django.urls import include, path

from finance.views import (
    ClientDetailAPIView,
    ClientListCreateAPIView,
    InvoiceAuthorizationStatusAPIView,
    InvoiceDetailAPIView,
    InvoiceFiscalDocumentAPIView,
    InvoiceIssueAPIView,
    InvoiceListCreateAPIView,
    InvoicePaymentListCreateAPIView,
    InvoiceVoidAPIView,
    ProductDetailAPIView,
    ProductListCreateAPIView,
    TaxDefinitionDetailAPIView,
    TaxDefinitionListCreateAPIView,
)

urlpatterns = [
    path(
        "clients/",
        ClientListCreateAPIView.as_view(),
        name="clients-list",
    ),
    path(
        "clients/<int:pk>/",
        ClientDetailAPIView.as_view(),
        name="clients-detail",
    ),
    path(
        "products/",
        ProductListCreateAPIView.as_view(),
        name="products-list",
    ),
    path(
        "products/<int:pk>/",
        ProductDetailAPIView.as_view(),
        name="products-detail",
    ),
    path(
        "invoices/",
        InvoiceListCreateAPIView.as_view(),
        name="invoices-list",
    ),
    path(
        "invoices/<int:pk>/",
        InvoiceDetailAPIView.as_view(),
        name="invoices-detail",
    ),
    path(
        "invoices/<int:pk>/issue/",
        InvoiceIssueAPIView.as_view(),
        name="invoices-issue",
    ),
    path(
        "invoices/<int:pk>/void/",
        InvoiceVoidAPIView.as_view(),
        name="invoices-void",
    ),
    path(
        "invoices/<int:pk>/payments/",
        InvoicePaymentListCreateAPIView.as_view(),
        name="invoices-payments",
    ),
    path(
        "invoices/<int:pk>/fiscal-document/",
        InvoiceFiscalDocumentAPIView.as_view(),
        name="invoices-fiscal-document",
    ),
    path(
        "invoices/<int:pk>/authorization-status/",
        InvoiceAuthorizationStatusAPIView.as_view(),
        name="invoices-authorization-status",
    ),
    path(
        "taxes/",
        TaxDefinitionListCreateAPIView.as_view(),
        name="taxes-list",
    ),
    path(
        "taxes/<int:pk>/",
        TaxDefinitionDetailAPIView.as_view(),
        name="taxes-detail",
    ),
    path("", include("finance.fiscal.api.urls")),
]
