from rest_framework import permissions, status, views
from rest_framework.response import Response

from .serializers import GenerateLateCodeSerializer, LateAccessCodeSerializer, ValidateLateCodeSerializer
from .services import LateAccessRegistry


class ExamLateCodesView(views.APIView):
    """
    GET: codes issued for an exam (exam creator or inspector).
    POST: issue a new code.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, exam_id):
        codes = LateAccessRegistry.list_codes(exam_id=exam_id, user=request.user)
        return Response(LateAccessCodeSerializer(codes, many=True).data)

    def post(self, request, exam_id):
        serializer = GenerateLateCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        late_code = LateAccessRegistry.generate_code(
            exam_id=exam_id,
            generated_by=request.user,
            **serializer.validated_data,
        )
        return Response(LateAccessCodeSerializer(late_code).data, status=status.HTTP_201_CREATED)


class ValidateLateCodeView(views.APIView):
    """Student redeems a code; the next start on that exam uses it."""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ValidateLateCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        usage = LateAccessRegistry.validate_code(
            code=serializer.validated_data['code'],
            exam_id=serializer.validated_data['exam_id'],
            user=request.user,
        )
        return Response({
            "valid": True,
            "exam_id": usage.late_code.exam_id,
            "usages_remaining": usage.late_code.usages_remaining,
            "expires_at": usage.late_code.expires_at,
        })


class RevokeLateCodeView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        late_code = LateAccessRegistry.revoke_code(code_id=pk, user=request.user)
        return Response(LateAccessCodeSerializer(late_code).data)
