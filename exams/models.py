# assessment_platform/exams/models.py
from django.conf import settings
from django.db import models


class Exam(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PENDING_VALIDATION = "pending_validation", "Pending Validation"
        VALIDATED = "validated", "Validated"
        PUBLISHED = "published", "Published"
        ARCHIVED = "archived", "Archived"

    class EvaluationType(models.TextChoices):
        MULTIPLE_CHOICE = "multiple_choice", "Multiple Choice"
        TRUE_FALSE = "true_false", "True / False"
        OPEN_QUESTION = "open_question", "Open Question"
        ADAPTIVE = "adaptive", "Adaptive Difficulty"
        EXAM_SIMULATION = "exam_simulation", "Exam Simulation"
        # No dedicated strategy; graded as multiple choice
        CASE_STUDY = "case_study", "Case Study"
        MIXED = "mixed", "Mixed"

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='created_exams'
    )

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    evaluation_type = models.CharField(
        max_length=20, choices=EvaluationType.choices, default=EvaluationType.MULTIPLE_CHOICE
    )

    # Availability window; both ends optional
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    duration_minutes = models.PositiveIntegerField(default=60)
    late_duration_minutes = models.PositiveIntegerField(
        null=True, blank=True, help_text="Session length for students admitted with a late-access code"
    )

    pass_mark_percentage = models.PositiveIntegerField(default=50)
    max_attempts = models.PositiveIntegerField(null=True, blank=True)
    time_between_attempts = models.PositiveIntegerField(
        null=True, blank=True, help_text="Cool-down in hours after a completed attempt"
    )

    # Anti-cheat policy
    max_tab_switches = models.PositiveIntegerField(null=True, blank=True)
    fullscreen_required = models.BooleanField(default=False)
    disable_copy_paste = models.BooleanField(default=False)
    webcam_required = models.BooleanField(default=False)
    block_right_click = models.BooleanField(default=False)

    # Score decorators applied after evaluation, e.g. ["time_bonus", "badges"]
    score_decorators = models.JSONField(default=list, blank=True)

    # Denormalized stats, maintained by exams.receivers
    total_attempts = models.PositiveIntegerField(default=0)
    total_completions = models.PositiveIntegerField(default=0)
    average_score = models.FloatField(default=0)
    pass_rate = models.FloatField(default=0)
    last_attempt_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    @property
    def is_published(self):
        return self.status == self.Status.PUBLISHED

    @property
    def anti_cheat_policy(self):
        return {
            "max_tab_switches": self.max_tab_switches,
            "fullscreen_required": self.fullscreen_required,
            "disable_copy_paste": self.disable_copy_paste,
            "webcam_required": self.webcam_required,
            "block_right_click": self.block_right_click,
        }


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MCQ = "mcq", "Multiple Choice"
        TRUE_FALSE = "true_false", "True / False"
        OPEN = "open", "Open Ended"

    class Difficulty(models.TextChoices):
        BEGINNER = "beginner", "Beginner"
        INTERMEDIATE = "intermediate", "Intermediate"
        ADVANCED = "advanced", "Advanced"
        EXPERT = "expert", "Expert"

    class GradingMode(models.TextChoices):
        KEYWORDS = "keywords", "Keywords"
        SEMANTIC = "semantic", "Semantic"
        HYBRID = "hybrid", "Hybrid"
        MANUAL = "manual", "Manual"

    exam = models.ForeignKey(Exam, related_name='questions', on_delete=models.CASCADE)

    text = models.TextField()
    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.MCQ)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.INTERMEDIATE)
    points = models.PositiveIntegerField(default=1)
    order = models.PositiveIntegerField(default=0)

    # Open question grading
    model_answer = models.TextField(blank=True)
    grading_mode = models.CharField(max_length=20, choices=GradingMode.choices, default=GradingMode.HYBRID)
    semantic_threshold = models.FloatField(default=0.7)
    min_length = models.PositiveIntegerField(null=True, blank=True)
    max_length = models.PositiveIntegerField(null=True, blank=True)
    case_sensitive = models.BooleanField(default=False)

    class Meta:
        ordering = ['order', 'id']

    def __str__(self):
        return f"{self.text[:50]}..."


class Option(models.Model):
    question = models.ForeignKey(Question, related_name='options', on_delete=models.CASCADE)
    text = models.CharField(max_length=255)
    is_correct = models.BooleanField(default=False)

    def __str__(self):
        return self.text


class QuestionKeyword(models.Model):
    question = models.ForeignKey(Question, related_name='keywords', on_delete=models.CASCADE)
    word = models.CharField(max_length=100)
    weight = models.PositiveIntegerField(default=10)
    required = models.BooleanField(default=False)
    synonyms = models.JSONField(default=list, blank=True)

    def __str__(self):
        return self.word
