from django.contrib import admin

from .models import Exam, Question, Option, QuestionKeyword


class OptionInline(admin.TabularInline):
    model = Option
    extra = 0


class KeywordInline(admin.TabularInline):
    model = QuestionKeyword
    extra = 0


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ('title', 'status', 'evaluation_type', 'created_by', 'total_attempts', 'pass_rate')
    list_filter = ('status', 'evaluation_type')
    search_fields = ('title',)


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'exam', 'question_type', 'difficulty', 'points')
    list_filter = ('question_type', 'difficulty')
    inlines = [OptionInline, KeywordInline]
