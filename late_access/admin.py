from django.contrib import admin

from .models import LateAccessCode, LateAccessUsage


class LateAccessUsageInline(admin.TabularInline):
    model = LateAccessUsage
    extra = 0
    readonly_fields = ('user', 'used_at', 'attempt')


@admin.register(LateAccessCode)
class LateAccessCodeAdmin(admin.ModelAdmin):
    list_display = ('code', 'exam', 'status', 'generated_by', 'assigned_user', 'max_usages', 'expires_at')
    list_filter = ('status',)
    search_fields = ('code', 'exam__title')
    inlines = [LateAccessUsageInline]
