from __future__ import annotations

from rest_framework import serializers

from finance.fiscal.models import TenantFiscalConfig


class TenantFiscalConfigUpsertSerializer(serializers.Serializer):
    provider_type = serializers.ChoiceField(choices=TenantFiscalConfig.ProviderType.choices)
    api_base_url = serializers.URLField(required=False, allow_blank=True, default="")
    token = serializers.CharField(allow_blank=True, required=False, default="", write_only=True)
    environment = serializers.ChoiceField(choices=TenantFiscalConfig.Environment.choices)

    def validate(self, attrs):
        if attrs["provider_type"] == TenantFiscalConfig.ProviderType.HTTP and not attrs.get("api_base_url"):
            raise serializers.ValidationError({"api_base_url": "Required for the http provider."})
        return attrs


class TenantFiscalConfigReadSerializer(serializers.ModelSerializer):
    has_token = serializers.SerializerMethodField()

    class Meta:
        model = TenantFiscalConfig
        fields = (
            "id",
            "provider_type",
            "api_base_url",
            "environment",
            "active",
            "has_token",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_has_token(self, obj: TenantFiscalConfig) -> bool:
        return bool((obj.api_token or "").strip())
