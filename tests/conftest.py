import itertools

import pytest
from rest_framework.test import APIClient

from exams.models import Exam, Question, Option, QuestionKeyword

_emails = itertools.count(1)


@pytest.fixture
def make_user(django_user_model):
    def _make_user(role="student", **extra):
        n = next(_emails)
        email = extra.pop("email", f"user{n}@example.com")
        return django_user_model.objects.create_user(
            username=extra.pop("username", f"user{n}"),
            email=email,
            password="pass1234",
            role=role,
            **extra,
        )
    return _make_user


@pytest.fixture
def student(make_user):
    return make_user("student")


@pytest.fixture
def other_student(make_user):
    return make_user("student")


@pytest.fixture
def teacher(make_user):
    return make_user("teacher")


@pytest.fixture
def inspector(make_user):
    return make_user("inspector")


@pytest.fixture
def make_exam(teacher):
    def _make_exam(questions=4, points=1, **fields):
        fields.setdefault("title", "Algebra I")
        fields.setdefault("status", Exam.Status.PUBLISHED)
        fields.setdefault("created_by", teacher)
        exam = Exam.objects.create(**fields)
        for i in range(questions):
            question = Question.objects.create(exam=exam, text=f"Question {i + 1}", points=points, order=i)
            Option.objects.create(question=question, text="right", is_correct=True)
            Option.objects.create(question=question, text="wrong", is_correct=False)
        return exam
    return _make_exam


@pytest.fixture
def exam(make_exam):
    return make_exam(pass_mark_percentage=50)


@pytest.fixture
def open_exam(teacher):
    exam = Exam.objects.create(
        title="Essay",
        status=Exam.Status.PUBLISHED,
        created_by=teacher,
        evaluation_type=Exam.EvaluationType.OPEN_QUESTION,
        pass_mark_percentage=50,
    )
    keyword_question = Question.objects.create(
        exam=exam, text="Name the capital of France", question_type=Question.QuestionType.OPEN,
        points=10, grading_mode=Question.GradingMode.KEYWORDS, order=0,
    )
    QuestionKeyword.objects.create(question=keyword_question, word="paris", weight=10)
    Question.objects.create(
        exam=exam, text="Discuss", question_type=Question.QuestionType.OPEN,
        points=1, grading_mode=Question.GradingMode.MANUAL, order=1,
    )
    return exam


@pytest.fixture
def answer():
    """Builds a submission entry selecting the right (or wrong) option of a question."""
    def _answer(question, correct=True, **extra):
        option = question.options.get(is_correct=correct)
        return {"question_id": question.id, "selected_option_id": option.id, **extra}
    return _answer


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def student_client(api_client, student):
    api_client.force_authenticate(user=student)
    return api_client
