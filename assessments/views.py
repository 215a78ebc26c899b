from rest_framework import generics, permissions, status, views
from rest_framework.response import Response

from exams.serializers import ExamSerializer
from late_access.serializers import LateAccessCodeSerializer

from .serializers import (
    StartAttemptSerializer,
    ResumeAttemptSerializer,
    AnswerSerializer,
    SubmitAttemptSerializer,
    AttemptFilterSerializer,
    AntiCheatEventInputSerializer,
    AttemptResponseSerializer,
    AntiCheatEventSerializer,
    ExamAttemptSerializer,
    ExamAttemptDetailSerializer,
    StartedAttemptSerializer,
    MonitoredAttemptSerializer,
)
from .services.attempt_service import ExamAttemptService


def _client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


# --- STUDENT VIEWS ---

class StartAttemptView(views.APIView):
    """
    Student starts an exam.
    Returns the resume token and the exam WITH questions (no answers).
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, exam_id):
        serializer = StartAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        attempt = ExamAttemptService.start_attempt(
            exam_id=exam_id,
            user=request.user,
            late_code=serializer.validated_data.get('late_code') or None,
            ip_address=_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
        return Response(StartedAttemptSerializer(attempt).data, status=status.HTTP_201_CREATED)


class AttemptListView(generics.ListAPIView):
    """All attempts of the logged-in student, newest first. Filter with ?exam=<id>."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ExamAttemptSerializer

    def get_queryset(self):
        filters = AttemptFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return ExamAttemptService.list_attempts(
            user=self.request.user,
            exam_id=filters.validated_data.get('exam'),
        )


class AttemptDetailView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        attempt = ExamAttemptService.get_attempt(attempt_id=pk, user=request.user)
        return Response(ExamAttemptDetailSerializer(attempt).data)


class ResumeAttemptView(views.APIView):
    """Reload an in-progress attempt after a refresh: session, exam and saved answers."""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        serializer = ResumeAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        resumed = ExamAttemptService.resume_attempt(
            attempt_id=pk,
            resume_token=serializer.validated_data['resume_token'],
            user=request.user,
        )
        data = StartedAttemptSerializer(resumed.attempt).data
        data['responses'] = AttemptResponseSerializer(resumed.responses, many=True).data
        return Response(data)


class SaveAnswerView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        serializer = AnswerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        response = ExamAttemptService.save_answer(attempt_id=pk, user=request.user, **serializer.validated_data)
        return Response(AttemptResponseSerializer(response).data)


class AntiCheatEventView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        serializer = AntiCheatEventInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        event = ExamAttemptService.record_anti_cheat_event(
            attempt_id=pk,
            user=request.user,
            event_type=data['type'],
            metadata=data.get('metadata'),
            client_event_id=data['event_id'],
            occurred_at=data.get('occurred_at'),
        )
        return Response(AntiCheatEventSerializer(event).data, status=status.HTTP_201_CREATED)


class SubmitAttemptView(views.APIView):
    """Student submits answers; grading happens immediately."""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        serializer = SubmitAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        submission = ExamAttemptService.submit_attempt(
            attempt_id=pk,
            user=request.user,
            responses=serializer.validated_data['responses'],
        )
        return Response({
            "attempt": ExamAttemptDetailSerializer(submission.attempt).data,
            "result": submission.result.to_dict(),
            "responses": AttemptResponseSerializer(submission.responses, many=True).data,
        })


# --- STAFF VIEWS ---

class ExamMonitorView(views.APIView):
    """
    Live view of one exam for its creator or an inspector: every attempt with
    its tab-switch count and anti-cheat ledger, plus the exam's late codes.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, exam_id):
        monitor = ExamAttemptService.monitor_exam(exam_id=exam_id, user=request.user)
        return Response({
            "exam": ExamSerializer(monitor.exam).data,
            "attempts": MonitoredAttemptSerializer(monitor.attempts, many=True).data,
            "late_codes": LateAccessCodeSerializer(monitor.late_codes, many=True).data,
        })
