import re

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import connection, models

from django_tenants.models import DomainMixin, TenantMixin

from tenancy.rbac import validate_rbac_overrides_schema


def _normalize_schema_name(value: str) -> str:
    """Normalize tenant code into a safe, deterministic postgres schema name."""

    normalized = (value or "").strip().lower()
    normalized = re.sub(r"[^a-z0-9_]+", "_", normalized).strip("_")
    return normalized[:63] if normalized else normalized


class Company(TenantMixin):
    """Tenant and fiscal issuer of every invoice emitted under its schema."""

    auto_create_schema = True

    name = models.CharField(max_length=150)
    trade_name = models.CharField(max_length=150, blank=True)
    tenant_code = models.SlugField(
        max_length=63,
        unique=True,
        help_text="Identifier used in the X-Tenant-ID header.",
    )
    subdomain = models.SlugField(
        max_length=63,
        unique=True,
        help_text="Tenant subdomain used for host-based tenant resolution.",
    )

    # Issuer identification printed on every fiscal document.
    nit = models.CharField(max_length=20, blank=True)
    nrc = models.CharField(max_length=20, blank=True)
    activity_code = models.CharField(max_length=10, blank=True)
    economic_activity = models.CharField(max_length=255, blank=True)
    establishment_code = models.CharField(max_length=10, blank=True, default="0001")
    legal_representative = models.CharField(max_length=150, blank=True)
    address = models.TextField(blank=True)
    department = models.CharField(max_length=2, blank=True)
    municipality = models.CharField(max_length=2, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)

    is_active = models.BooleanField(default=True)
    rbac_overrides = models.JSONField(
        default=dict,
        blank=True,
        validators=[validate_rbac_overrides_schema],
        help_text=(
            "Optional tenant RBAC overrides. "
            "Example: {'taxes': {'POST': ['OWNER', 'MANAGER']}}"
        ),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("name",)
        verbose_name = "Company"
        verbose_name_plural = "Companies"

    def __str__(self):
        return f"{self.name} ({self.tenant_code})"

    def clean(self):
        super().clean()

        if not self.schema_name:
            self.schema_name = _normalize_schema_name(self.tenant_code)
        if self.schema_name == "public":
            raise ValidationError({"tenant_code": "tenant_code cannot map to the public schema."})

        try:
            validate_rbac_overrides_schema(self.rbac_overrides)
        except ValidationError as exc:
            try:
                detail = exc.message_dict
            except (AttributeError, TypeError):
                detail = exc.messages
            raise ValidationError(detail) from exc

    def save(self, *args, **kwargs):
        if not getattr(self, "schema_name", ""):
            self.schema_name = _normalize_schema_name(self.tenant_code)

        # When django-tenants is disabled (sqlite/legacy), we must bypass TenantMixin.save,
        # because it queries postgres catalogs to create/check schemas.
        if not getattr(settings, "DJANGO_TENANTS_ENABLED", False) or connection.vendor != "postgresql":
            return models.Model.save(self, *args, **kwargs)

        return super().save(*args, **kwargs)


class Domain(DomainMixin):
    """Tenant domain mapping for django-tenants.

    Examples:
    - acme.facturacion.example
    - acme.localhost (dev)
    """

    class Meta:
        verbose_name = "Tenant Domain"
        verbose_name_plural = "Tenant Domains"


class CompanyMembership(models.Model):
    ROLE_MEMBER = "MEMBER"
    ROLE_MANAGER = "MANAGER"
    ROLE_OWNER = "OWNER"
    ROLE_CHOICES = [
        (ROLE_MEMBER, "Member"),
        (ROLE_MANAGER, "Manager"),
        (ROLE_OWNER, "Owner"),
    ]

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="company_memberships",
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_MEMBER)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("company__name", "user__username")
        constraints = [
            models.UniqueConstraint(
                fields=("company", "user"),
                name="uq_company_membership_company_user",
            ),
        ]
        verbose_name = "Company Membership"
        verbose_name_plural = "Company Memberships"

    def __str__(self):
        return f"{self.user} @ {self.company} ({self.role})"
