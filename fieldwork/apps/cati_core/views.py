from __future__ import annotations

from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import dialer
from .completion import CompletionProcessor
from .exceptions import NoEligibleRespondent, TransportFailure
from .models import QueueEntry, SurveyResponse
from .pagination import CatiPagination
from .serializers import (
    AbandonSerializer,
    CompletionSerializer,
    MakeCallSerializer,
    QueueEntrySerializer,
    StartedInterviewSerializer,
    SurveyResponseSerializer,
)


class SurveyStartView(APIView):
    permission_classes = (IsAuthenticated,)

    def post(self, request, pk=None):
        try:
            started = dialer.start_interview(pk, request.user)
        except NoEligibleRespondent as exc:
            return Response(
                {**exc.as_payload(), 'has_pending_respondents': False},
                status=exc.http_status,
            )
        data = StartedInterviewSerializer(started).data
        return Response({**data, 'has_pending_respondents': True}, status=status.HTTP_200_OK)


class QueueEntryViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = QueueEntrySerializer
    permission_classes = (IsAuthenticated,)
    pagination_class = CatiPagination

    def get_queryset(self):
        queryset = (
            QueueEntry.objects.live()
            .select_related('survey', 'interviewer')
            .prefetch_related('call_attempts__attempted_by')
            .order_by('-priority', 'created_at', 'id')
        )
        user = self.request.user
        if not user.is_staff:
            queryset = queryset.filter(
                Q(interviewer=user) | Q(call_attempts__attempted_by=user)
            ).distinct()
        return self._apply_filters(queryset)

    def _apply_filters(self, queryset):
        params = self.request.query_params
        survey_id = params.get('survey') or params.get('survey_id')
        if survey_id:
            queryset = queryset.filter(survey_id=survey_id)
        status_param = params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param)
        interviewer_param = params.get('interviewer')
        if interviewer_param:
            queryset = queryset.filter(interviewer_id=interviewer_param)
        return queryset

    def _entry_payload(self, entry: QueueEntry) -> dict:
        entry.refresh_from_db()
        return self.get_serializer(entry).data

    @action(detail=True, methods=['post'], url_path='make-call')
    def make_call(self, request, pk=None):
        entry = dialer.get_queue_entry(pk)
        serializer = MakeCallSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = dialer.place_call(
            entry,
            request.user,
            interviewer_phone=serializer.validated_data.get('interviewer_phone') or None,
        )
        if not outcome.success:
            failure = TransportFailure(outcome.message, error_code=outcome.error_code)
            return Response(
                {**failure.as_payload(), 'queue': self._entry_payload(entry)},
                status=failure.http_status,
            )
        return Response(
            {'call_id': outcome.call_id, 'queue': self._entry_payload(entry)},
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=['post'], url_path='abandon')
    def abandon(self, request, pk=None):
        entry = dialer.get_queue_entry(pk)
        serializer = AbandonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = dialer.abandon(
            entry,
            request.user,
            reason=serializer.validated_data.get('reason') or None,
            notes=serializer.validated_data.get('notes', ''),
            call_later_date=serializer.validated_data.get('call_later_date'),
        )
        return Response(self._entry_payload(entry))

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        serializer = CompletionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        finalized = CompletionProcessor().complete(pk, request.user, serializer.to_payload())
        return Response(
            {
                'response_id': finalized.response_id,
                'status': finalized.status,
                'queue_id': int(pk),
            },
            status=status.HTTP_200_OK,
        )


class SurveyResponseViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = SurveyResponseSerializer
    permission_classes = (IsAuthenticated,)
    pagination_class = CatiPagination

    def get_queryset(self):
        queryset = SurveyResponse.objects.select_related('interviewer', 'set_record').order_by('-created_at')
        user = self.request.user
        if not user.is_staff:
            queryset = queryset.filter(interviewer=user)
        survey_id = self.request.query_params.get('survey')
        if survey_id:
            queryset = queryset.filter(survey_id=survey_id)
        status_param = self.request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param)
        return queryset
