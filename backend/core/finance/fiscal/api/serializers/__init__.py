from .fiscal_config import (
    TenantFiscalConfigReadSerializer,
    TenantFiscalConfigUpsertSerializer,
)

__all__ = [
    "TenantFiscalConfigReadSerializer",
    "TenantFiscalConfigUpsertSerializer",
]
