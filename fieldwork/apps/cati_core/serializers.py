from __future__ import annotations

from typing import Any

from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from .completion import CompletionPayload
from .models import CallAttempt, QueueEntry, SetRecord, SurveyResponse


class CallAttemptSerializer(serializers.ModelSerializer):
    attempted_by_username = serializers.CharField(source='attempted_by.username', read_only=True, default=None)

    class Meta:
        model = CallAttempt
        fields = (
            'attempt_number',
            'attempted_at',
            'attempted_by',
            'attempted_by_username',
            'outcome',
            'reason',
            'notes',
            'call_id',
            'scheduled_for',
        )
        read_only_fields = fields


class QueueEntrySerializer(serializers.ModelSerializer):
    interviewer_username = serializers.CharField(source='interviewer.username', read_only=True, default=None)
    respondent = serializers.SerializerMethodField()
    call_attempts = CallAttemptSerializer(many=True, read_only=True)

    class Meta:
        model = QueueEntry
        fields = (
            'id',
            'survey',
            'respondent',
            'status',
            'priority',
            'interviewer',
            'interviewer_username',
            'claimed_at',
            'created_at',
            'attempt_count',
            'last_attempted_at',
            'completed_at',
            'response',
            'abandonment_reason',
            'abandonment_notes',
            'call_later_date',
            'call_attempts',
        )
        read_only_fields = fields

    def get_respondent(self, obj: QueueEntry) -> dict[str, str]:
        return obj.respondent_snapshot


class StartedInterviewSerializer(serializers.Serializer):
    session_id = serializers.CharField(source='session.session_id')
    queue_id = serializers.IntegerField(source='entry.pk')
    survey = serializers.IntegerField(source='entry.survey_id')
    respondent = serializers.DictField(source='entry.respondent_snapshot')
    interviewer_phone = serializers.CharField()
    attempt_count = serializers.IntegerField(source='entry.attempt_count')
    status = serializers.CharField(source='entry.status')
    assigned_area_codes = serializers.ListField(child=serializers.CharField())
    requires_area_selection = serializers.BooleanField()


class MakeCallSerializer(serializers.Serializer):
    interviewer_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)


class AbandonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=32)
    notes = serializers.CharField(required=False, allow_blank=True)
    call_later_date = serializers.DateTimeField(required=False, allow_null=True)

    def validate_reason(self, value: str) -> str:
        # Unknown codes are accepted and fall back to call_failed.
        return value.strip().lower()


class CompletionSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=64)
    answers = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    selected_area_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    selected_station = serializers.DictField(required=False, allow_null=True)
    total_time_spent = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    start_time = serializers.DateTimeField(required=False, allow_null=True)
    end_time = serializers.DateTimeField(required=False, allow_null=True)
    total_questions = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    answered_questions = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    completion_percentage = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=100)
    set_number = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    legacy_interviewer_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        start_time = attrs.get('start_time')
        end_time = attrs.get('end_time')
        if start_time and end_time and end_time < start_time:
            raise serializers.ValidationError({'end_time': _('End time cannot precede start time.')})
        return attrs

    def to_payload(self) -> CompletionPayload:
        return CompletionPayload(**self.validated_data)


class SetRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = SetRecord
        fields = ('set_number', 'interview_mode', 'created_at', 'updated_at')
        read_only_fields = fields


class SurveyResponseSerializer(serializers.ModelSerializer):
    interviewer_username = serializers.CharField(source='interviewer.username', read_only=True)
    set_record = SetRecordSerializer(read_only=True, allow_null=True)

    class Meta:
        model = SurveyResponse
        fields = (
            'id',
            'response_id',
            'session_id',
            'survey',
            'interviewer',
            'interviewer_username',
            'queue_entry',
            'interview_mode',
            'call_id',
            'set_number',
            'set_record',
            'answers',
            'selected_area_code',
            'selected_station',
            'legacy_interviewer_id',
            'start_time',
            'end_time',
            'total_time_spent',
            'total_questions',
            'answered_questions',
            'skipped_questions',
            'completion_percentage',
            'status',
            'reviewer',
            'reviewed_at',
            'feedback',
            'auto_rejected',
            'auto_rejection_reasons',
            'created_at',
            'updated_at',
        )
        read_only_fields = fields
