from django.urls import path

from finance.fiscal.api.views import TenantFiscalConfigUpsertAPIView

urlpatterns = [
    path("fiscal/config/", TenantFiscalConfigUpsertAPIView.as_view(), name="fiscal-config"),
]
