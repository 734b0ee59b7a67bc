import logging

from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from finance.models import Client, Invoice, InvoicePayment, Product, TaxDefinition
from finance.serializers import (
    ClientSerializer,
    InvoicePaymentCreateSerializer,
    InvoicePaymentSerializer,
    InvoiceSerializer,
    InvoiceUpdateSerializer,
    InvoiceVoidSerializer,
    InvoiceWriteSerializer,
    ProductSerializer,
    TaxDefinitionSerializer,
)
from finance.services import (
    check_authorization_status,
    create_invoice,
    get_invoice,
    issue_invoice,
    record_payment,
    update_draft_invoice,
    void_invoice,
)
from finance.taxes import save_tax_definition
from tenancy.permissions import IsTenantRoleAllowed
from tenancy.views import TenantScopedAPIViewMixin

logger = logging.getLogger(__name__)


def _line_payloads(lines) -> list[dict]:
    payloads = []
    for line in lines:
        payload = dict(line)
        payload["product_id"] = payload.pop("product", None)
        payloads.append(payload)
    return payloads


def _invoice_response(invoice_id, company, status_code=status.HTTP_200_OK) -> Response:
    invoice = get_invoice(invoice_id, company=company)
    return Response(InvoiceSerializer(invoice).data, status=status_code)


def _truthy(value) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes"}


class ClientListCreateAPIView(TenantScopedAPIViewMixin, generics.ListCreateAPIView):
    model = Client
    serializer_class = ClientSerializer
    tenant_resource_key = "clients"
    ordering = ("name", "id")

    def get_queryset(self):
        queryset = super().get_queryset()

        search = (self.request.query_params.get("search") or "").strip()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(last_name__icontains=search)
                | Q(code__icontains=search)
                | Q(nit__icontains=search)
                | Q(dui__icontains=search)
            )

        client_type = (self.request.query_params.get("client_type") or "").strip().lower()
        if client_type:
            queryset = queryset.filter(client_type=client_type)

        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(active=_truthy(active))
        return queryset


class ClientDetailAPIView(TenantScopedAPIViewMixin, generics.RetrieveUpdateDestroyAPIView):
    model = Client
    serializer_class = ClientSerializer
    tenant_resource_key = "clients"


class ProductListCreateAPIView(TenantScopedAPIViewMixin, generics.ListCreateAPIView):
    model = Product
    serializer_class = ProductSerializer
    tenant_resource_key = "products"
    ordering = ("name", "id")

    def get_queryset(self):
        queryset = super().get_queryset()

        search = (self.request.query_params.get("search") or "").strip()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(code__icontains=search) | Q(description__icontains=search)
            )

        product_type = (self.request.query_params.get("product_type") or "").strip().lower()
        if product_type:
            queryset = queryset.filter(product_type=product_type)

        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(active=_truthy(active))
        return queryset


class ProductDetailAPIView(TenantScopedAPIViewMixin, generics.RetrieveUpdateDestroyAPIView):
    model = Product
    serializer_class = ProductSerializer
    tenant_resource_key = "products"


class InvoiceListCreateAPIView(TenantScopedAPIViewMixin, generics.ListCreateAPIView):
    model = Invoice
    serializer_class = InvoiceSerializer
    tenant_resource_key = "invoices"
    ordering = ("-issue_date", "-id")

    def get_queryset(self):
        queryset = (
            super()
            .get_queryset()
            .select_related("customer")
            .prefetch_related("lines__tax_assessments", "payments")
        )

        status_filter = (self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        customer_id = self.request.query_params.get("customer_id")
        if customer_id:
            queryset = queryset.filter(customer_id=customer_id)

        issue_date_from = self.request.query_params.get("issue_date_from")
        if issue_date_from:
            queryset = queryset.filter(issue_date__gte=issue_date_from)

        issue_date_to = self.request.query_params.get("issue_date_to")
        if issue_date_to:
            queryset = queryset.filter(issue_date__lte=issue_date_to)

        number = (self.request.query_params.get("number") or "").strip()
        if number:
            queryset = queryset.filter(number__icontains=number)

        return queryset

    def create(self, request, *args, **kwargs):
        serializer = InvoiceWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        invoice = create_invoice(
            request.company,
            data["customer"],
            _line_payloads(data["lines"]),
            data["global_discount"],
            series=data["series"],
            document_type=data["document_type"],
            issue_date=data["issue_date"],
            due_date=data["due_date"],
            payment_method=data["payment_method"],
            notes=data["notes"],
            actor=request.user,
            request=request,
        )
        return _invoice_response(invoice.pk, request.company, status.HTTP_201_CREATED)


class InvoiceDetailAPIView(TenantScopedAPIViewMixin, generics.RetrieveAPIView):
    model = Invoice
    serializer_class = InvoiceSerializer
    tenant_resource_key = "invoices"

    def get_queryset(self):
        return (
            super()
            .get_queryset()
            .select_related("customer")
            .prefetch_related("lines__tax_assessments", "payments")
        )

    def put(self, request, pk: int):
        serializer = InvoiceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        lines = data.pop("lines", None)
        update_draft_invoice(
            pk,
            company=request.company,
            customer=data.pop("customer", None),
            lines=_line_payloads(lines) if lines is not None else None,
            global_discount=data.pop("global_discount", None),
            actor=request.user,
            request=request,
            **data,
        )
        return _invoice_response(pk, request.company)


class InvoiceIssueAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "invoices"

    def post(self, request, pk: int):
        invoice, result = issue_invoice(
            pk,
            company=request.company,
            actor=request.user,
            request=request,
        )
        payload = InvoiceSerializer(get_invoice(invoice.pk, company=request.company)).data
        payload["authorization"] = result.to_dict()
        return Response(payload, status=status.HTTP_200_OK)


class InvoiceVoidAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "invoices"

    def post(self, request, pk: int):
        serializer = InvoiceVoidSerializer(data=request.data or {})
        serializer.is_valid(raise_exception=True)

        void_invoice(
            pk,
            serializer.validated_data["reason"],
            company=request.company,
            actor=request.user,
            request=request,
        )
        return _invoice_response(pk, request.company)


class InvoicePaymentListCreateAPIView(TenantScopedAPIViewMixin, generics.ListCreateAPIView):
    model = InvoicePayment
    serializer_class = InvoicePaymentSerializer
    tenant_resource_key = "invoice_payments"
    ordering = ("payment_date", "id")

    def get_queryset(self):
        get_object_or_404(Invoice.all_objects, pk=self.kwargs["pk"], company=self.request.company)
        return super().get_queryset().filter(invoice_id=self.kwargs["pk"]).select_related("recorded_by")

    def create(self, request, *args, **kwargs):
        serializer = InvoicePaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        invoice, payment = record_payment(
            self.kwargs["pk"],
            data["amount"],
            company=request.company,
            payment_date=data["payment_date"],
            method=data["method"],
            reference=data["reference"],
            notes=data["notes"],
            actor=request.user,
            request=request,
        )
        return Response(
            {
                "payment": InvoicePaymentSerializer(payment).data,
                "invoice_status": invoice.status,
            },
            status=status.HTTP_201_CREATED,
        )


class InvoiceFiscalDocumentAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "invoices"

    def get(self, request, pk: int):
        invoice = get_object_or_404(
            Invoice.all_objects.only("id", "number", "fiscal_xml", "content_hash"),
            pk=pk,
            company=request.company,
        )
        if not invoice.fiscal_xml:
            return Response(
                {"kind": "reference_error", "detail": "Invoice has no fiscal document yet."},
                status=status.HTTP_404_NOT_FOUND,
            )

        response = HttpResponse(invoice.fiscal_xml.encode("utf-8"), content_type="application/xml")
        response["Content-Disposition"] = f'attachment; filename="{invoice.number}.xml"'
        response["X-Content-Hash"] = invoice.content_hash
        return response


class InvoiceAuthorizationStatusAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "invoices"

    def get(self, request, pk: int):
        payload = check_authorization_status(pk, company=request.company)
        return Response(payload, status=status.HTTP_200_OK)


class TaxDefinitionListCreateAPIView(TenantScopedAPIViewMixin, generics.ListCreateAPIView):
    model = TaxDefinition
    serializer_class = TaxDefinitionSerializer
    tenant_resource_key = "taxes"
    ordering = ("category", "code")

    def get_queryset(self):
        queryset = super().get_queryset()
        category = (self.request.query_params.get("category") or "").strip().lower()
        if category:
            queryset = queryset.filter(category=category)
        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(active=_truthy(active))
        return queryset

    def perform_create(self, serializer):
        serializer.instance = save_tax_definition(
            company=self.request.company,
            actor=self.request.user,
            request=self.request,
            **serializer.validated_data,
        )


class TaxDefinitionDetailAPIView(TenantScopedAPIViewMixin, generics.RetrieveUpdateAPIView):
    model = TaxDefinition
    serializer_class = TaxDefinitionSerializer
    tenant_resource_key = "taxes"

    def perform_update(self, serializer):
        serializer.instance = save_tax_definition(
            company=self.request.company,
            instance=serializer.instance,
            actor=self.request.user,
            request=self.request,
            **serializer.validated_data,
        )
