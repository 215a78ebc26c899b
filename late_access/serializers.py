from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import LateAccessCode, LateAccessUsage

User = get_user_model()


class LateAccessUsageSerializer(serializers.ModelSerializer):
    user_email = serializers.CharField(source='user.email', read_only=True)

    class Meta:
        model = LateAccessUsage
        fields = ['user', 'user_email', 'used_at', 'attempt']


class LateAccessCodeSerializer(serializers.ModelSerializer):
    generated_by_email = serializers.CharField(source='generated_by.email', read_only=True)
    usage_count = serializers.IntegerField(read_only=True)
    usages_remaining = serializers.IntegerField(read_only=True)
    usage_history = LateAccessUsageSerializer(source='usages', many=True, read_only=True)

    class Meta:
        model = LateAccessCode
        fields = [
            'id', 'code', 'exam', 'status', 'generated_by', 'generated_by_email', 'assigned_user',
            'max_usages', 'usage_count', 'usages_remaining', 'expires_at', 'reason', 'notes',
            'revoked_by', 'revoked_at', 'usage_history', 'created_at',
        ]
        read_only_fields = fields


class GenerateLateCodeSerializer(serializers.Serializer):
    max_usages = serializers.IntegerField(required=False, min_value=1)
    expires_at = serializers.DateTimeField(required=False)
    assigned_user = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)


class ValidateLateCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)
    exam_id = serializers.IntegerField()
