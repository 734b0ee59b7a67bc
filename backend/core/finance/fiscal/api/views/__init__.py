from .fiscal_config import TenantFiscalConfigUpsertAPIView

__all__ = ["TenantFiscalConfigUpsertAPIView"]
