from django.db.models import Q
from rest_framework import viewsets, permissions, filters
from rest_framework.exceptions import PermissionDenied

from .models import Exam, Question
from .permissions import IsExamStaff, IsExamOwnerOrInspector
from .serializers import ExamSerializer, ExamConfigSerializer, QuestionSerializer


class ExamViewSet(viewsets.ModelViewSet):
    # Enable search on title
    filter_backends = [filters.SearchFilter]
    search_fields = ['title']

    def get_queryset(self):
        user = self.request.user
        queryset = Exam.objects.all().order_by('-created_at')
        if user.is_staff or getattr(user, 'is_inspector', False):
            return queryset
        if getattr(user, 'is_exam_staff', False):
            return queryset.filter(Q(created_by=user) | Q(status=Exam.Status.PUBLISHED))
        # Students only ever see published exams
        return queryset.filter(status=Exam.Status.PUBLISHED)

    def get_serializer_class(self):
        user = self.request.user
        if user.is_staff or getattr(user, 'is_exam_staff', False):
            return ExamSerializer
        return ExamConfigSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [permissions.IsAuthenticated()]
        return [IsExamStaff(), IsExamOwnerOrInspector()]

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)


class QuestionViewSet(viewsets.ModelViewSet):
    serializer_class = QuestionSerializer
    permission_classes = [IsExamStaff]

    filter_backends = [filters.SearchFilter]
    search_fields = ['text']

    def get_queryset(self):
        user = self.request.user
        queryset = Question.objects.select_related('exam').prefetch_related('options', 'keywords')
        if not (user.is_staff or getattr(user, 'is_inspector', False)):
            queryset = queryset.filter(exam__created_by=user)
        # Filter by Exam if provided ?exam_id=1
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return queryset

    def _check_exam_owner(self, exam):
        user = self.request.user
        if exam.created_by_id != user.id and not (user.is_staff or getattr(user, 'is_inspector', False)):
            raise PermissionDenied("Only the exam creator can edit its questions.")

    def perform_create(self, serializer):
        self._check_exam_owner(serializer.validated_data['exam'])
        serializer.save()

    def perform_update(self, serializer):
        self._check_exam_owner(serializer.instance.exam)
        serializer.save()
