from django.contrib import admin

from .models import ExamAttempt, AntiCheatEvent, AttemptResponse


class AttemptResponseInline(admin.TabularInline):
    model = AttemptResponse
    extra = 0
    readonly_fields = ('question', 'selected_option', 'text_answer', 'is_correct', 'earned_points', 'answered_at')


class AntiCheatEventInline(admin.TabularInline):
    model = AntiCheatEvent
    extra = 0
    readonly_fields = ('sequence', 'event_type', 'client_event_id', 'occurred_at', 'metadata')


@admin.register(ExamAttempt)
class ExamAttemptAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'exam', 'status', 'percentage', 'passed', 'suspicious_activity_detected', 'started_at')
    list_filter = ('status', 'passed', 'suspicious_activity_detected')
    search_fields = ('user__email', 'exam__title')
    readonly_fields = ('resume_token', 'version')
    inlines = [AttemptResponseInline, AntiCheatEventInline]
