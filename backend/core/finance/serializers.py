from django.utils import timezone
from rest_framework import serializers

from finance.lifecycle import InvoiceStatus, allowed_transitions
from finance.models import Client, Invoice, InvoiceLine, InvoicePayment, Product, TaxAssessment, TaxDefinition
from finance.money import ZERO, subtract, to_money


class TaxAssessmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = TaxAssessment
        fields = (
            "id",
            "tax_definition",
            "tax_code",
            "tax_name",
            "base",
            "percentage",
            "amount",
        )
        read_only_fields = fields


class InvoiceLineSerializer(serializers.ModelSerializer):
    tax_assessments = TaxAssessmentSerializer(many=True, read_only=True)

    class Meta:
        model = InvoiceLine
        fields = (
            "id",
            "position",
            "product",
            "product_code",
            "unit_of_measure",
            "description",
            "quantity",
            "unit_price",
            "discount",
            "subtotal",
            "tax_total",
            "line_total",
            "note",
            "tax_assessments",
        )
        read_only_fields = fields


class InvoicePaymentSerializer(serializers.ModelSerializer):
    recorded_by_username = serializers.CharField(source="recorded_by.username", read_only=True, default="")

    class Meta:
        model = InvoicePayment
        fields = (
            "id",
            "invoice",
            "amount",
            "payment_date",
            "method",
            "reference",
            "notes",
            "recorded_by",
            "recorded_by_username",
            "created_at",
        )
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.display_name", read_only=True)
    lines = InvoiceLineSerializer(many=True, read_only=True)
    amount_paid = serializers.SerializerMethodField()
    balance_due = serializers.SerializerMethodField()
    is_overdue = serializers.SerializerMethodField()
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = (
            "id",
            "number",
            "series",
            "document_type",
            "issue_date",
            "due_date",
            "payment_date",
            "status",
            "customer",
            "customer_name",
            "payment_method",
            "notes",
            "subtotal",
            "total_taxes",
            "global_discount",
            "grand_total",
            "amount_paid",
            "balance_due",
            "is_overdue",
            "allowed_transitions",
            "authorization_code",
            "authorized_at",
            "content_hash",
            "signature_algorithm",
            "voided_at",
            "lines",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def _paid(self, obj: Invoice):
        return to_money(sum((payment.amount for payment in obj.payments.all()), ZERO))

    def get_amount_paid(self, obj: Invoice) -> str:
        return str(self._paid(obj))

    def get_balance_due(self, obj: Invoice) -> str:
        if obj.status in (InvoiceStatus.DRAFT, InvoiceStatus.VOID):
            return str(ZERO)
        return str(subtract(obj.grand_total, self._paid(obj)))

    def get_is_overdue(self, obj: Invoice) -> bool:
        if obj.status == InvoiceStatus.EXPIRED:
            return True
        if obj.status != InvoiceStatus.ISSUED or obj.due_date is None:
            return False
        return obj.due_date < timezone.localdate()

    def get_allowed_transitions(self, obj: Invoice) -> list[str]:
        return sorted(allowed_transitions(obj.status))


class InvoiceLineInputSerializer(serializers.Serializer):
    product = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    discount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, default=ZERO)
    taxes = serializers.ListField(
        child=serializers.IntegerField(),
        required=False,
        allow_null=True,
        help_text="Tax definition ids. Omit to apply the company defaults.",
    )
    note = serializers.CharField(required=False, allow_blank=True, default="")


class InvoiceWriteSerializer(serializers.Serializer):
    customer = serializers.IntegerField()
    lines = InvoiceLineInputSerializer(many=True)
    global_discount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, default=ZERO)
    series = serializers.CharField(required=False, allow_blank=True, default="A", max_length=10)
    document_type = serializers.ChoiceField(
        choices=Invoice.DocumentType.choices,
        required=False,
        default=Invoice.DocumentType.INVOICE,
    )
    issue_date = serializers.DateField(required=False, allow_null=True, default=None)
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    payment_method = serializers.ChoiceField(
        choices=Invoice.PaymentMethod.choices,
        required=False,
        default=Invoice.PaymentMethod.CASH,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class InvoiceUpdateSerializer(serializers.Serializer):
    customer = serializers.IntegerField(required=False)
    lines = InvoiceLineInputSerializer(many=True, required=False)
    global_discount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    series = serializers.CharField(required=False, allow_blank=True, max_length=10)
    document_type = serializers.ChoiceField(choices=Invoice.DocumentType.choices, required=False)
    issue_date = serializers.DateField(required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=Invoice.PaymentMethod.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class InvoiceVoidSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class InvoicePaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_date = serializers.DateField(required=False, allow_null=True, default=None)
    method = serializers.ChoiceField(choices=Invoice.PaymentMethod.choices, required=False, allow_null=True, default=None)
    reference = serializers.CharField(required=False, allow_blank=True, default="", max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class TaxDefinitionSerializer(serializers.ModelSerializer):
    class Meta:
        model = TaxDefinition
        fields = (
            "id",
            "name",
            "code",
            "percentage",
            "category",
            "description",
            "is_default",
            "active",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")
        # Uniqueness is enforced by save_tax_definition inside its transaction.
        validators = []


class TenantCatalogSerializer(serializers.ModelSerializer):
    """Catalog records whose `code` is unique per company."""

    unique_per_company = ("code",)

    def _company(self):
        request = self.context.get("request")
        return getattr(request, "company", None)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        company = self._company()
        if company is None:
            return attrs

        model = self.Meta.model
        errors = {}
        for name in self.unique_per_company:
            value = (attrs.get(name) or "").strip()
            if not value:
                continue
            duplicates = model.all_objects.filter(company=company, **{name: value})
            if self.instance is not None:
                duplicates = duplicates.exclude(pk=self.instance.pk)
            if duplicates.exists():
                errors[name] = [f"Another record of this company already uses this {name}."]
        if errors:
            raise serializers.ValidationError(errors)
        return attrs


class ClientSerializer(TenantCatalogSerializer):
    unique_per_company = ("code", "nit", "dui")
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = Client
        fields = (
            "id",
            "code",
            "client_type",
            "name",
            "last_name",
            "display_name",
            "nit",
            "dui",
            "address",
            "phone",
            "email",
            "tax_exempt",
            "credit_days",
            "active",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "display_name", "created_at", "updated_at")


class ProductSerializer(TenantCatalogSerializer):
    class Meta:
        model = Product
        fields = (
            "id",
            "code",
            "name",
            "description",
            "unit_of_measure",
            "sale_price",
            "product_type",
            "tax_exempt",
            "active",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")
