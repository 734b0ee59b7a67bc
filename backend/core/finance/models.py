from __future__ import annotations

import logging
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from finance.errors import TotalsInvariantError
from finance.lifecycle import InvoiceStatus, validate_transition
from finance.money import ZERO, subtract
from tenancy.models import BaseTenantModel

logger = logging.getLogger(__name__)

MONEY_FIELD = {"max_digits": 14, "decimal_places": 2}


class Client(BaseTenantModel):
    class ClientType(models.TextChoices):
        NATURAL_PERSON = "natural_person", "Natural person"
        LEGAL_ENTITY = "legal_entity", "Legal entity"

    code = models.CharField(max_length=30)
    client_type = models.CharField(
        max_length=20,
        choices=ClientType.choices,
        default=ClientType.NATURAL_PERSON,
    )
    name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150, blank=True)
    nit = models.CharField(max_length=20, blank=True)
    dui = models.CharField(max_length=12, blank=True)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    tax_exempt = models.BooleanField(default=False)
    credit_days = models.PositiveIntegerField(default=0)
    active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ("name", "id")
        constraints = [
            models.UniqueConstraint(
                fields=("company", "code"),
                name="uq_finance_client_code_per_company",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} - {self.display_name}"

    @property
    def display_name(self) -> str:
        if self.client_type == self.ClientType.LEGAL_ENTITY:
            return self.name
        return f"{self.name} {self.last_name}".strip()


class Product(BaseTenantModel):
    class ProductType(models.TextChoices):
        GOOD = "good", "Good"
        SERVICE = "service", "Service"

    code = models.CharField(max_length=30)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    unit_of_measure = models.CharField(max_length=10, default="UNI")
    sale_price = models.DecimalField(**MONEY_FIELD, validators=[MinValueValidator(0)])
    product_type = models.CharField(
        max_length=10,
        choices=ProductType.choices,
        default=ProductType.GOOD,
    )
    tax_exempt = models.BooleanField(default=False)
    active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ("name", "id")
        constraints = [
            models.UniqueConstraint(
                fields=("company", "code"),
                name="uq_finance_product_code_per_company",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} - {self.name}"


class TaxDefinition(BaseTenantModel):
    class Category(models.TextChoices):
        VAT = "vat", "VAT"
        EXCISE = "excise", "Excise"
        CONSUMPTION = "consumption", "Consumption"
        MUNICIPAL = "municipal", "Municipal"

    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20)
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    category = models.CharField(
        max_length=20,
        choices=Category.choices,
        default=Category.VAT,
    )
    description = models.TextField(blank=True)
    is_default = models.BooleanField(default=False)
    active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ("category", "code")
        constraints = [
            models.UniqueConstraint(
                fields=("company", "code"),
                name="uq_finance_tax_code_per_company",
            ),
            models.UniqueConstraint(
                fields=("company", "category"),
                condition=models.Q(is_default=True, active=True),
                name="uq_finance_tax_single_default_per_category",
            ),
            models.CheckConstraint(
                condition=models.Q(percentage__gte=0) & models.Q(percentage__lte=100),
                name="ck_finance_tax_percentage_range",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.percentage}%)"


class InvoiceSequence(BaseTenantModel):
    """Last allocated invoice number of a company; locked while allocating."""

    last_number = models.PositiveBigIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=("company",),
                name="uq_finance_invoice_sequence_per_company",
            ),
        ]


class Invoice(BaseTenantModel):
    Status = InvoiceStatus

    class DocumentType(models.TextChoices):
        INVOICE = "invoice", "Invoice"
        TAX_CREDIT_NOTE = "tax_credit_note", "Tax credit note"
        CREDIT_NOTE = "credit_note", "Credit note"
        DEBIT_NOTE = "debit_note", "Debit note"

    class PaymentMethod(models.TextChoices):
        CASH = "cash", "Cash"
        CARD = "card", "Card"
        TRANSFER = "transfer", "Transfer"
        CHECK = "check", "Check"
        CREDIT = "credit", "Credit"

    TOTAL_FIELDS = ("subtotal", "total_taxes", "global_discount", "grand_total")

    number = models.CharField(max_length=30)
    series = models.CharField(max_length=10, blank=True, default="A")
    document_type = models.CharField(
        max_length=20,
        choices=DocumentType.choices,
        default=DocumentType.INVOICE,
    )
    issue_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField(null=True, blank=True)
    payment_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=10,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.DRAFT,
        db_index=True,
    )

    subtotal = models.DecimalField(**MONEY_FIELD, default=ZERO)
    total_taxes = models.DecimalField(**MONEY_FIELD, default=ZERO)
    global_discount = models.DecimalField(**MONEY_FIELD, default=ZERO)
    grand_total = models.DecimalField(**MONEY_FIELD, default=ZERO)

    payment_method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    notes = models.TextField(blank=True)

    customer = models.ForeignKey(
        Client,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="issued_invoices",
        null=True,
        blank=True,
    )

    # Fiscal outcome, written together with the draft -> issued transition.
    fiscal_document = models.JSONField(null=True, blank=True)
    fiscal_xml = models.TextField(blank=True)
    content_hash = models.CharField(max_length=64, blank=True)
    signature = models.TextField(blank=True)
    signature_algorithm = models.CharField(max_length=30, blank=True)
    authority_response = models.JSONField(null=True, blank=True)
    authorization_code = models.CharField(max_length=64, blank=True, db_index=True)
    authorized_at = models.DateTimeField(null=True, blank=True)
    submission_claimed_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-issue_date", "-id")
        constraints = [
            models.UniqueConstraint(
                fields=("company", "number"),
                name="uq_finance_invoice_number_per_company",
            ),
            models.CheckConstraint(
                condition=models.Q(subtotal__gte=0)
                & models.Q(total_taxes__gte=0)
                & models.Q(global_discount__gte=0)
                & models.Q(grand_total__gte=0),
                name="ck_finance_invoice_amounts_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(global_discount__lte=models.F("subtotal")),
                name="ck_finance_invoice_discount_within_subtotal",
            ),
        ]
        indexes = [
            models.Index(fields=("company", "status", "due_date"), name="idx_invoice_status_due"),
        ]

    def __str__(self) -> str:
        return f"{self.number} [{self.status}]"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_state = {
            name: getattr(instance, name)
            for name in ("status", *cls.TOTAL_FIELDS)
            if name in field_names
        }
        return instance

    def _check_totals_identity(self):
        expected = subtract(Decimal(self.subtotal) + Decimal(self.total_taxes), self.global_discount)
        if Decimal(self.grand_total) != expected:
            logger.error(
                "finance.invoice.invariant_violation company_id=%s invoice_id=%s "
                "subtotal=%s total_taxes=%s global_discount=%s grand_total=%s",
                self.company_id,
                self.pk,
                self.subtotal,
                self.total_taxes,
                self.global_discount,
                self.grand_total,
            )
            raise TotalsInvariantError(
                "grand_total must equal subtotal + total_taxes - global_discount.",
                invoice_id=self.pk,
            )

    def _check_persisted_state(self):
        loaded = getattr(self, "_loaded_state", None)
        if not loaded:
            return

        previous_status = loaded.get("status")
        if previous_status is not None and previous_status != self.status:
            validate_transition(previous_status, self.status)

        if previous_status is not None and previous_status != InvoiceStatus.DRAFT:
            changed = [
                name
                for name in self.TOTAL_FIELDS
                if name in loaded and Decimal(loaded[name]) != Decimal(getattr(self, name))
            ]
            if changed:
                logger.error(
                    "finance.invoice.invariant_violation company_id=%s invoice_id=%s "
                    "status=%s immutable_fields=%s",
                    self.company_id,
                    self.pk,
                    previous_status,
                    ",".join(changed),
                )
                raise TotalsInvariantError(
                    "Totals of a non-draft invoice are immutable.",
                    invoice_id=self.pk,
                    fields=changed,
                )

    def save(self, *args, **kwargs):
        self._check_totals_identity()
        self._check_persisted_state()
        result = super().save(*args, **kwargs)
        self._loaded_state = {name: getattr(self, name) for name in ("status", *self.TOTAL_FIELDS)}
        return result

    def delete(self, *args, **kwargs):
        raise TotalsInvariantError("Invoices are never deleted; void them instead.")

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT


class InvoiceLine(BaseTenantModel):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    position = models.PositiveIntegerField()
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="invoice_lines",
        null=True,
        blank=True,
    )
    product_code = models.CharField(max_length=30, blank=True)
    unit_of_measure = models.CharField(max_length=10, blank=True, default="UNI")
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(**MONEY_FIELD)
    discount = models.DecimalField(**MONEY_FIELD, default=ZERO)
    subtotal = models.DecimalField(**MONEY_FIELD)
    tax_total = models.DecimalField(**MONEY_FIELD)
    line_total = models.DecimalField(**MONEY_FIELD)
    note = models.TextField(blank=True)

    class Meta:
        # Reached through an already tenant-scoped invoice.
        default_manager_name = "all_objects"
        ordering = ("invoice_id", "position")
        constraints = [
            models.UniqueConstraint(
                fields=("invoice", "position"),
                name="uq_finance_invoice_line_position",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0)
                & models.Q(unit_price__gte=0)
                & models.Q(discount__gte=0)
                & models.Q(subtotal__gte=0),
                name="ck_finance_invoice_line_amounts",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.invoice_id}#{self.position} {self.description}"


class TaxAssessment(BaseTenantModel):
    line = models.ForeignKey(
        InvoiceLine,
        on_delete=models.CASCADE,
        related_name="tax_assessments",
    )
    tax_definition = models.ForeignKey(
        TaxDefinition,
        on_delete=models.PROTECT,
        related_name="assessments",
    )
    # Snapshots: later edits of the definition never change an assessed line.
    tax_code = models.CharField(max_length=20)
    tax_name = models.CharField(max_length=100)
    base = models.DecimalField(**MONEY_FIELD)
    percentage = models.DecimalField(max_digits=5, decimal_places=2)
    amount = models.DecimalField(**MONEY_FIELD)

    class Meta:
        default_manager_name = "all_objects"
        ordering = ("line_id", "id")


class InvoicePayment(BaseTenantModel):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    amount = models.DecimalField(**MONEY_FIELD)
    payment_date = models.DateField(default=timezone.localdate)
    method = models.CharField(
        max_length=10,
        choices=Invoice.PaymentMethod.choices,
        default=Invoice.PaymentMethod.CASH,
    )
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="recorded_invoice_payments",
        null=True,
        blank=True,
    )

    class Meta:
        default_manager_name = "all_objects"
        ordering = ("payment_date", "id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="ck_finance_invoice_payment_positive",
            ),
        ]
