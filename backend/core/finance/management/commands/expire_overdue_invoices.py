from __future__ import annotations

from contextlib import nullcontext

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from customers.models import Company
from finance.services import expire_overdue_invoices
from tenancy.context import tenant_context


def _schema_scope(company):
    if not getattr(settings, "DJANGO_TENANTS_ENABLED", False):
        return nullcontext()
    from django_tenants.utils import schema_context

    return schema_context(company.schema_name)


class Command(BaseCommand):
    help = "Move issued invoices past their due date (and not fully paid) to expired."

    def add_arguments(self, parser):
        parser.add_argument("--tenant", dest="tenant_code", default="", help="Only this tenant_code.")
        parser.add_argument("--today", default="", help="Reference date (YYYY-MM-DD); defaults to today.")

    def handle(self, *args, **options):
        today = None
        if options["today"]:
            today = parse_date(options["today"])
            if today is None:
                raise CommandError(f"Invalid --today value: {options['today']!r}")

        companies = Company.objects.filter(is_active=True).order_by("id")
        tenant_code = (options["tenant_code"] or "").strip().lower()
        if tenant_code:
            companies = companies.filter(tenant_code=tenant_code)
            if not companies.exists():
                raise CommandError(f"Unknown tenant: {tenant_code}")

        total = 0
        for company in companies:
            with _schema_scope(company), tenant_context(company):
                expired = expire_overdue_invoices(today, company=company)
            total += len(expired)
            self.stdout.write(f"{company.tenant_code}: expired={len(expired)}")

        self.stdout.write(self.style.SUCCESS(f"expire_overdue_invoices: expired={total}"))
