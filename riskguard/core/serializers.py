"""
Serializers for the session security API.
"""

from django.conf import settings
from rest_framework import serializers

from .models import (
    AlertRecord,
    AlertThreshold,
    AuditEvent,
    AuditEventType,
    RiskLevel,
    ThresholdDirection,
    UserSession,
)


class UserSessionSerializer(serializers.ModelSerializer):
    """
    Session as shown to its owner or an administrator.

    The device fingerprint is masked; only enough is shown to tell
    devices apart.
    """

    device_fingerprint = serializers.SerializerMethodField()
    location = serializers.CharField(source='location_string', read_only=True)
    is_current = serializers.SerializerMethodField()

    class Meta:
        model = UserSession
        fields = [
            'id',
            'device_fingerprint',
            'device_name',
            'browser',
            'os',
            'is_mobile',
            'device_trust',
            'ip_address',
            'location',
            'country',
            'city',
            'created_at',
            'last_activity',
            'expires_at',
            'is_active',
            'is_suspicious',
            'risk_score',
            'risk_reasons',
            'invalidated_at',
            'invalidation_reason',
            'is_current',
        ]
        read_only_fields = fields

    def get_device_fingerprint(self, obj):
        if not obj.device_fingerprint:
            return ''
        return f"{obj.device_fingerprint[:8]}..."

    def get_is_current(self, obj):
        current_session_id = self.context.get('current_session_id')
        return bool(current_session_id) and str(obj.id) == str(current_session_id)


class AuditEventSerializer(serializers.ModelSerializer):

    user_id = serializers.SerializerMethodField()

    class Meta:
        model = AuditEvent
        fields = [
            'id',
            'user_id',
            'email',
            'ip_address',
            'user_agent',
            'event_type',
            'description',
            'metadata',
            'risk_level',
            'success',
            'timestamp',
        ]
        read_only_fields = fields

    def get_user_id(self, obj):
        return str(obj.user_id) if obj.user_id else None


class AuditEventQuerySerializer(serializers.Serializer):
    """Query parameters for the audit event listing."""

    risk_level = serializers.MultipleChoiceField(choices=RiskLevel.choices, required=False)
    event_type = serializers.MultipleChoiceField(choices=AuditEventType.choices, required=False)
    since = serializers.DateTimeField(required=False)
    until = serializers.DateTimeField(required=False)
    user_id = serializers.CharField(required=False)
    limit = serializers.IntegerField(
        required=False,
        default=100,
        min_value=1,
        max_value=getattr(settings, 'AUDIT_QUERY_MAX_LIMIT', 500),
    )

    def validate(self, attrs):
        since, until = attrs.get('since'), attrs.get('until')
        if since and until and since > until:
            raise serializers.ValidationError({'until': 'Must not be earlier than since.'})
        return attrs


class AlertThresholdSerializer(serializers.ModelSerializer):

    class Meta:
        model = AlertThreshold
        fields = ['metric', 'critical', 'warning', 'direction', 'enabled', 'message_template', 'updated_at']
        read_only_fields = ['metric', 'updated_at']

    def validate(self, attrs):
        instance = self.instance
        critical = attrs.get('critical', getattr(instance, 'critical', None))
        warning = attrs.get('warning', getattr(instance, 'warning', None))
        direction = attrs.get('direction', getattr(instance, 'direction', ThresholdDirection.HIGHER_IS_WORSE))

        if critical is not None and warning is not None:
            if direction == ThresholdDirection.LOWER_IS_WORSE and critical > warning:
                raise serializers.ValidationError(
                    'For lower-is-worse metrics the critical threshold must not exceed the warning threshold.'
                )
            if direction == ThresholdDirection.HIGHER_IS_WORSE and critical < warning:
                raise serializers.ValidationError(
                    'For higher-is-worse metrics the critical threshold must not be below the warning threshold.'
                )
        return attrs


class AlertRecordSerializer(serializers.ModelSerializer):

    class Meta:
        model = AlertRecord
        fields = ['id', 'metric', 'level', 'value', 'threshold', 'message', 'context', 'notified', 'fired_at']
        read_only_fields = fields


class BulkSessionActionSerializer(serializers.Serializer):

    ACTION_CHOICES = [
        ('invalidate', 'Invalidate'),
        ('mark_suspicious', 'Mark suspicious'),
        ('clear_suspicious', 'Clear suspicious flag'),
    ]

    action = serializers.ChoiceField(choices=ACTION_CHOICES)
    session_ids = serializers.ListField(
        child=serializers.UUIDField(),
        min_length=1,
        max_length=100,
    )


class MetricsCheckSerializer(serializers.Serializer):
    """Nested business/health metrics, e.g. {'analyses': {'success_rate': 0.9}}."""

    metrics = serializers.DictField()
