from django.urls import path

from .views import (
    StartAttemptView,
    AttemptListView,
    AttemptDetailView,
    ResumeAttemptView,
    SaveAnswerView,
    AntiCheatEventView,
    SubmitAttemptView,
    ExamMonitorView,
)

urlpatterns = [
    # Student Exam Flow
    path('exams/<int:exam_id>/attempts/start/', StartAttemptView.as_view(), name='attempt-start'),
    path('attempts/', AttemptListView.as_view(), name='attempt-list'),
    path('attempts/<int:pk>/', AttemptDetailView.as_view(), name='attempt-detail'),
    path('attempts/<int:pk>/resume/', ResumeAttemptView.as_view(), name='attempt-resume'),
    path('attempts/<int:pk>/answers/', SaveAnswerView.as_view(), name='attempt-answers'),
    path('attempts/<int:pk>/anti-cheat-events/', AntiCheatEventView.as_view(), name='attempt-anti-cheat'),
    path('attempts/<int:pk>/submit/', SubmitAttemptView.as_view(), name='attempt-submit'),

    # Staff monitoring
    path('exams/<int:exam_id>/monitor/', ExamMonitorView.as_view(), name='exam-monitor'),
]
