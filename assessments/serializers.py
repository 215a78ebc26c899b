from rest_framework import serializers

from exams.serializers import StudentExamSerializer
from .models import ExamAttempt, AttemptResponse, AntiCheatEvent


# --- Input ---

class StartAttemptSerializer(serializers.Serializer):
    late_code = serializers.CharField(required=False, allow_blank=True, max_length=32)


class ResumeAttemptSerializer(serializers.Serializer):
    resume_token = serializers.CharField()


class AnswerSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    selected_option_id = serializers.IntegerField(required=False, allow_null=True)
    text_answer = serializers.CharField(required=False, allow_blank=True, default="")
    time_spent = serializers.IntegerField(required=False, min_value=0)


class SubmitAttemptSerializer(serializers.Serializer):
    responses = AnswerSerializer(many=True)


class AttemptFilterSerializer(serializers.Serializer):
    exam = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class AntiCheatEventInputSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=AntiCheatEvent.EventType.choices)
    metadata = serializers.DictField(required=False, allow_null=True)
    # Client delivery id; retries must reuse it
    event_id = serializers.CharField(max_length=64)
    occurred_at = serializers.DateTimeField(required=False)


# --- Output ---

class AttemptResponseSerializer(serializers.ModelSerializer):
    question_id = serializers.IntegerField(read_only=True)
    selected_option_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = AttemptResponse
        fields = [
            'id', 'question_id', 'selected_option_id', 'text_answer', 'is_correct',
            'earned_points', 'grading_details', 'time_spent', 'answered_at',
        ]


class AntiCheatEventSerializer(serializers.ModelSerializer):
    type = serializers.CharField(source='event_type')
    event_id = serializers.CharField(source='client_event_id')

    class Meta:
        model = AntiCheatEvent
        fields = ['id', 'type', 'sequence', 'event_id', 'occurred_at', 'recorded_at', 'metadata']


class ExamAttemptSerializer(serializers.ModelSerializer):
    """Attempt history entry (lightweight)."""
    exam_title = serializers.CharField(source='exam.title', read_only=True)

    class Meta:
        model = ExamAttempt
        fields = [
            'id', 'exam', 'exam_title', 'status', 'started_at', 'expires_at', 'submitted_at',
            'ended_at', 'score', 'max_score', 'percentage', 'passed', 'time_spent_seconds',
        ]
        read_only_fields = fields


class ExamAttemptDetailSerializer(ExamAttemptSerializer):
    tab_switch_count = serializers.IntegerField(read_only=True)

    class Meta(ExamAttemptSerializer.Meta):
        fields = ExamAttemptSerializer.Meta.fields + [
            'feedback', 'evaluation_details', 'suspicious_activity_detected', 'tab_switch_count',
        ]
        read_only_fields = fields


class StartedAttemptSerializer(serializers.ModelSerializer):
    """Payload returned once: the only place the resume token is shown."""
    attempt_id = serializers.IntegerField(source='id', read_only=True)
    config = StudentExamSerializer(source='exam', read_only=True)

    class Meta:
        model = ExamAttempt
        fields = ['attempt_id', 'resume_token', 'status', 'started_at', 'expires_at', 'config']
        read_only_fields = fields


class MonitoredAttemptSerializer(ExamAttemptSerializer):
    """An attempt as seen by exam staff, with its anti-cheat ledger."""
    user_email = serializers.CharField(source='user.email', read_only=True)
    tab_switch_count = serializers.IntegerField(source='tab_switches', read_only=True)
    anti_cheat_events = AntiCheatEventSerializer(many=True, read_only=True)

    class Meta(ExamAttemptSerializer.Meta):
        fields = ExamAttemptSerializer.Meta.fields + [
            'user', 'user_email', 'suspicious_activity_detected', 'tab_switch_count', 'anti_cheat_events',
        ]
        read_only_fields = fields
