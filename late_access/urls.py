from django.urls import path

from .views import ExamLateCodesView, ValidateLateCodeView, RevokeLateCodeView

urlpatterns = [
    path('exams/<int:exam_id>/late-codes/', ExamLateCodesView.as_view(), name='exam-late-codes'),
    path('late-codes/validate/', ValidateLateCodeView.as_view(), name='late-code-validate'),
    path('late-codes/<int:pk>/revoke/', RevokeLateCodeView.as_view(), name='late-code-revoke'),
]
