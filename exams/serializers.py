# assessment_platform/exams/serializers.py
from django.db import transaction
from rest_framework import serializers

from .models import Exam, Question, Option, QuestionKeyword

# --- Helper Serializers ---

class OptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Option
        fields = ['id', 'text', 'is_correct']


class KeywordSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuestionKeyword
        fields = ['id', 'word', 'weight', 'required', 'synonyms']


# --- Question Serializers ---

class QuestionSerializer(serializers.ModelSerializer):
    # Map frontend 'question_text' to backend 'text'
    question_text = serializers.CharField(source='text')
    # Map frontend options array (strings) to backend Options models
    options = serializers.ListField(child=serializers.CharField(), required=False, write_only=True)
    options_data = OptionSerializer(source='options', many=True, read_only=True)
    correct_answer = serializers.CharField(required=False, allow_blank=True, write_only=True)
    keywords = KeywordSerializer(many=True, required=False)

    # Read-only field to show exam title
    exam_title = serializers.CharField(source='exam.title', read_only=True)

    class Meta:
        model = Question
        fields = [
            'id', 'exam', 'exam_title', 'question_text', 'question_type',
            'difficulty', 'points', 'order', 'correct_answer',
            'options', 'options_data',
            'model_answer', 'grading_mode', 'semantic_threshold',
            'min_length', 'max_length', 'case_sensitive', 'keywords',
        ]

    def validate_semantic_threshold(self, value):
        if not 0 <= value <= 1:
            raise serializers.ValidationError("Threshold must be between 0 and 1.")
        return value

    @transaction.atomic
    def create(self, validated_data):
        options_text = validated_data.pop('options', [])
        correct_ans = validated_data.pop('correct_answer', '')
        keywords = validated_data.pop('keywords', [])

        question = Question.objects.create(**validated_data)

        # Simple logic: if option text matches correct_answer, mark it true
        for opt_text in options_text:
            is_correct = (opt_text.strip().lower() == correct_ans.strip().lower())
            Option.objects.create(question=question, text=opt_text, is_correct=is_correct)

        for kw in keywords:
            QuestionKeyword.objects.create(question=question, **kw)

        return question

    @transaction.atomic
    def update(self, instance, validated_data):
        options_text = validated_data.pop('options', None)
        correct_ans = validated_data.pop('correct_answer', '')
        keywords = validated_data.pop('keywords', None)

        instance = super().update(instance, validated_data)

        if options_text is not None:
            instance.options.all().delete()
            for opt_text in options_text:
                is_correct = (opt_text.strip().lower() == correct_ans.strip().lower())
                Option.objects.create(question=instance, text=opt_text, is_correct=is_correct)

        if keywords is not None:
            instance.keywords.all().delete()
            for kw in keywords:
                QuestionKeyword.objects.create(question=instance, **kw)

        return instance


class StudentOptionSerializer(serializers.ModelSerializer):
    """Option without the correctness flag."""
    class Meta:
        model = Option
        fields = ['id', 'text']


class StudentQuestionSerializer(serializers.ModelSerializer):
    """Question as shown to a student taking the exam: no answers, no grading config."""
    question_text = serializers.CharField(source='text')
    options = StudentOptionSerializer(many=True, read_only=True)

    class Meta:
        model = Question
        fields = [
            'id', 'question_text', 'question_type', 'difficulty', 'points',
            'order', 'min_length', 'max_length', 'options',
        ]


# --- Exam Serializers ---

class ExamSerializer(serializers.ModelSerializer):
    # Map frontend 'passing_score' to backend 'pass_mark_percentage'
    passing_score = serializers.IntegerField(source='pass_mark_percentage', required=False)
    created_by = serializers.PrimaryKeyRelatedField(read_only=True)

    # Read-only counts
    total_questions = serializers.IntegerField(source='questions.count', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'created_by', 'status', 'evaluation_type',
            'start_time', 'end_time', 'duration_minutes', 'late_duration_minutes',
            'passing_score', 'max_attempts', 'time_between_attempts',
            'max_tab_switches', 'fullscreen_required', 'disable_copy_paste',
            'webcam_required', 'block_right_click', 'score_decorators',
            'total_questions', 'total_attempts', 'total_completions',
            'average_score', 'pass_rate', 'last_attempt_at',
        ]
        read_only_fields = [
            'total_attempts', 'total_completions', 'average_score', 'pass_rate', 'last_attempt_at',
        ]

    def validate_score_decorators(self, value):
        # Imported lazily: assessments depends on exams, not the other way round
        from assessments.services.score_decorators import DECORATOR_ORDER

        unknown = [name for name in value if name not in DECORATOR_ORDER]
        if unknown:
            raise serializers.ValidationError(f"Unknown score decorators: {', '.join(unknown)}")
        return value

    def validate(self, attrs):
        start = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end = attrs.get('end_time', getattr(self.instance, 'end_time', None))
        if start and end and end <= start:
            raise serializers.ValidationError({"end_time": "End time must be after start time."})
        return attrs


class ExamConfigSerializer(serializers.ModelSerializer):
    """Exam configuration handed to a student when an attempt starts."""
    passing_score = serializers.IntegerField(source='pass_mark_percentage', read_only=True)
    anti_cheat = serializers.DictField(source='anti_cheat_policy', read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'evaluation_type', 'duration_minutes', 'passing_score',
            'max_attempts', 'end_time', 'anti_cheat',
        ]


class StudentExamSerializer(ExamConfigSerializer):
    """Exam with its questions, stripped of anything that reveals answers."""
    questions = StudentQuestionSerializer(many=True, read_only=True)

    class Meta(ExamConfigSerializer.Meta):
        fields = ExamConfigSerializer.Meta.fields + ['description', 'questions']
