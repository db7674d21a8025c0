"""API views for the form service."""
from __future__ import annotations

from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from .exceptions import UnknownFieldError
from .models import Form
from .serializers import FormSerializer, FormSubmissionSerializer


class FormViewSet(viewsets.ModelViewSet):
    queryset = Form.objects.prefetch_related("form_fields__form_field_options").all()
    serializer_class = FormSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "description"]
    ordering_fields = ["name", "updated_at"]
    ordering = ["name"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        if self.request.query_params.get("active", "").lower() in {"1", "true", "yes"}:
            queryset = queryset.active()
        return queryset

    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request: Request, *args, **kwargs):  # type: ignore[override]
        """Validate and record one set of answers for the form."""

        form = self.get_object()
        if not isinstance(request.data, dict):
            return Response(
                {"detail": "Submission must be a JSON object."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            submission = form.form_submissions.submit(request.data)
        except UnknownFieldError as exc:
            return Response({exc.name: ["Unknown field."]}, status=status.HTTP_400_BAD_REQUEST)

        if submission.pk is None:
            return Response(submission.errors.as_dict(), status=status.HTTP_400_BAD_REQUEST)
        return Response(FormSubmissionSerializer(submission).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="submissions")
    def submissions(self, request: Request, *args, **kwargs):  # type: ignore[override]
        form = self.get_object()
        serializer = FormSubmissionSerializer(form.form_submissions.all(), many=True)
        return Response(serializer.data)


@api_view(["GET"])
def health(request: Request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
