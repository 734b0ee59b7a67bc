from django.http import JsonResponse
from django.urls import include, path
from rest_framework.authtoken.views import obtain_auth_token


def healthz(_request):
    return JsonResponse({"status": "ok"})


urlpatterns = [
    path("healthz/", healthz, name="healthz"),
    path("api/auth/token/", obtain_auth_token, name="api-token-auth"),
    path("api/finance/", include("finance.urls")),
]
