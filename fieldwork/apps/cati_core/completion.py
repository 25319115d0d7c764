from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from . import auto_rejection
from .dialer import ensure_owner, get_queue_entry
from .exceptions import Forbidden, NotFound, PersistenceInconsistency, ValidationFailure
from .models import (
    CallRecord,
    InterviewSession,
    QueueEntry,
    SetRecord,
    SurveyResponse,
)
from .review import ReviewIntake, get_review_intake

User = get_user_model()

logger = logging.getLogger(__name__)

LEGACY_INTERVIEWER_QUESTION_ID = 'interviewer-id'
COMPLETABLE_STATUSES = (QueueEntry.STATUS_CALLING, QueueEntry.STATUS_INTERVIEW_SUCCESS)


@dataclass
class CompletionPayload:
    session_id: str
    answers: list[dict[str, Any]] = field(default_factory=list)
    selected_area_code: str | None = None
    selected_station: dict[str, Any] | None = None
    total_time_spent: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    total_questions: int | None = None
    answered_questions: int | None = None
    completion_percentage: int | None = None
    set_number: int | None = None
    legacy_interviewer_id: str | None = None


@dataclass
class FinalizedResponse:
    response_id: str
    response: SurveyResponse
    # The interviewer never sees the auto-rejection outcome at submission time.
    status: str = SurveyResponse.STATUS_PENDING_APPROVAL


def write_with_verification(
    write: Callable[[], Any],
    read: Callable[[], Any],
    expected: Any,
    *,
    label: str = 'value',
) -> Any:
    """Write, read back and retry the write once on mismatch.

    Raises ``PersistenceInconsistency`` when the second read still disagrees.
    """
    actual = None
    for attempt in (1, 2):
        write()
        actual = read()
        if actual == expected:
            return actual
        logger.warning(
            'Read-back mismatch for %s on attempt %s: expected %r, found %r',
            label,
            attempt,
            expected,
            actual,
        )
    raise PersistenceInconsistency(
        f'Persisted {label} does not match the value written.',
        expected=expected,
        actual=actual,
    )


def is_answered(answer: Any) -> bool:
    if not isinstance(answer, dict):
        return False
    value = answer.get('response')
    if isinstance(value, (list, dict, str)):
        return len(value) > 0
    return value is not None and value is not False


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _legacy_interviewer_id(payload: CompletionPayload) -> str:
    if payload.legacy_interviewer_id not in (None, ''):
        return str(payload.legacy_interviewer_id)
    for answer in payload.answers:
        if isinstance(answer, dict) and answer.get('questionId') == LEGACY_INTERVIEWER_QUESTION_ID:
            value = answer.get('response')
            if value not in (None, ''):
                return str(value)
    return ''


class CompletionProcessor:
    def __init__(self, *, review_intake: ReviewIntake | None = None) -> None:
        self._review_intake = review_intake

    @property
    def review_intake(self) -> ReviewIntake:
        if self._review_intake is None:
            self._review_intake = get_review_intake()
        return self._review_intake

    def complete(self, queue_id: Any, interviewer: User, payload: CompletionPayload) -> FinalizedResponse:
        entry = get_queue_entry(queue_id)
        ensure_owner(entry, interviewer)
        if entry.status not in COMPLETABLE_STATUSES:
            raise ValidationFailure('Respondent call is not in progress.', status=entry.status)
        if not isinstance(payload.answers, list):
            raise ValidationFailure('Answers must be a list.')

        session = InterviewSession.objects.filter(session_id=payload.session_id).first()
        if session is None:
            raise NotFound('Interview session not found.')
        if session.interviewer_id != interviewer.pk:
            raise Forbidden('Interview session belongs to another interviewer.')
        if session.queue_entry_id is not None and session.queue_entry_id != entry.pk:
            raise ValidationFailure(
                'Interview session belongs to another respondent.',
                session_queue_id=session.queue_entry_id,
            )

        fields = self._response_fields(entry, session, payload)
        response = self._upsert_response(entry, session, interviewer, fields)

        if payload.set_number is not None:
            try:
                self._persist_set_number(response, payload.set_number)
            except PersistenceInconsistency as exc:
                logger.error('Set number for response %s not persisted: %s', response.response_id, exc.details)
            except Exception:
                logger.exception('Failed to persist set number for response %s', response.response_id)

        try:
            verdict = auto_rejection.evaluate(response, payload.answers, entry.survey)
            auto_rejection.apply_verdict(response, verdict)
        except Exception:
            logger.exception('Auto-rejection check failed for response %s', response.response_id)

        try:
            self._hand_off_for_review(response)
        except Exception:
            logger.exception('Review hand-off failed for response %s', response.response_id)

        if not entry.mark_interview_success(interviewer, response):
            logger.warning('Entry %s left %s while completing', entry.pk, entry.status)
        session.mark_completed()

        logger.info(
            'Interview completed for entry %s, response %s (session %s)',
            entry.pk,
            response.response_id,
            session.session_id,
        )
        return FinalizedResponse(response_id=str(response.response_id), response=response)

    def _response_fields(
        self,
        entry: QueueEntry,
        session: InterviewSession,
        payload: CompletionPayload,
    ) -> dict[str, Any]:
        survey = entry.survey

        # Location codes always come from the calling list when not supplied.
        area_code = payload.selected_area_code or entry.respondent_area_code
        station = payload.selected_station or {}
        if not station and area_code:
            station = {
                'acName': area_code,
                'pcName': entry.respondent_precinct_code or None,
                'state': survey.location_state or None,
            }

        start_time = payload.start_time or session.start_time or timezone.now()
        end_time = payload.end_time or timezone.now()
        # A zero duration means the client did not measure it.
        if payload.total_time_spent:
            total_time_spent = payload.total_time_spent
        elif session.total_time_spent:
            total_time_spent = session.total_time_spent
        else:
            total_time_spent = max(int((end_time - start_time).total_seconds()), 0)

        total_questions = payload.total_questions or survey.total_questions()
        if payload.answered_questions is not None:
            answered_questions = payload.answered_questions
        else:
            answered_questions = sum(1 for answer in payload.answers if is_answered(answer))
        if payload.completion_percentage is not None:
            completion_percentage = payload.completion_percentage
        elif total_questions:
            completion_percentage = _round_half_up(answered_questions / total_questions * 100)
        else:
            completion_percentage = 0

        return {
            'answers': payload.answers,
            'selected_area_code': area_code or '',
            'selected_station': station,
            'legacy_interviewer_id': _legacy_interviewer_id(payload),
            'start_time': start_time,
            'end_time': end_time,
            'total_time_spent': total_time_spent,
            'total_questions': total_questions,
            'answered_questions': answered_questions,
            'skipped_questions': total_questions - answered_questions,
            'completion_percentage': min(max(completion_percentage, 0), 100),
            'call_id': self._resolve_call_id(entry),
            'metadata': {
                'queue_entry_id': entry.pk,
                'respondent_phone': entry.respondent_phone,
                'respondent_name': entry.respondent_name,
            },
        }

    def _resolve_call_id(self, entry: QueueEntry) -> str:
        if entry.call_record_id and entry.call_record.call_id:
            return entry.call_record.call_id
        latest = CallRecord.objects.filter(queue_entry=entry).order_by('-created_at', '-id').first()
        return latest.call_id if latest else ''

    def _existing_response(self, entry: QueueEntry, session: InterviewSession) -> SurveyResponse | None:
        by_session = SurveyResponse.objects.filter(session_id=session.session_id).first()
        by_entry = SurveyResponse.objects.filter(queue_entry=entry).first()
        if by_session and by_entry and by_session.pk != by_entry.pk:
            raise ValidationFailure(
                'Session and respondent are already recorded on different responses.',
                session_response_id=str(by_session.response_id),
                queue_response_id=str(by_entry.response_id),
            )
        if by_session and by_session.queue_entry_id not in (None, entry.pk):
            raise ValidationFailure('Interview session is recorded against another respondent.')
        return by_session or by_entry

    def _upsert_response(
        self,
        entry: QueueEntry,
        session: InterviewSession,
        interviewer: User,
        fields: dict[str, Any],
    ) -> SurveyResponse:
        with transaction.atomic():
            QueueEntry.objects.select_for_update().filter(pk=entry.pk).first()
            response = self._existing_response(entry, session)
            if response is None:
                try:
                    with transaction.atomic():
                        response = SurveyResponse.objects.create(
                            session_id=session.session_id,
                            survey=entry.survey,
                            interviewer=interviewer,
                            queue_entry=entry,
                            **fields,
                        )
                    logger.info('Created response %s for entry %s', response.response_id, entry.pk)
                    return response
                except IntegrityError:
                    response = self._existing_response(entry, session)
                    if response is None:
                        raise
                    logger.info('Concurrent completion for entry %s, updating response', entry.pk)

            for name, value in fields.items():
                setattr(response, name, value)
            response.save(update_fields=[*fields.keys(), 'updated_at'])
            logger.info('Updated existing response %s for entry %s', response.response_id, entry.pk)
            return response

    def _persist_set_number(self, response: SurveyResponse, set_number: int) -> None:
        def write() -> None:
            SurveyResponse.objects.filter(pk=response.pk).update(set_number=set_number)
            SetRecord.objects.update_or_create(
                response=response,
                defaults={'survey_id': response.survey_id, 'set_number': set_number},
            )

        def read() -> tuple[int | None, int | None]:
            stored = SurveyResponse.objects.filter(pk=response.pk).values_list('set_number', flat=True).first()
            mirrored = SetRecord.objects.filter(response=response).values_list('set_number', flat=True).first()
            return stored, mirrored

        write_with_verification(write, read, (set_number, set_number), label='set number')
        response.set_number = set_number

    def _hand_off_for_review(self, response: SurveyResponse) -> None:
        response.refresh_from_db()
        if response.auto_rejected or response.review_enqueued_at is not None:
            return
        self.review_intake.enqueue_for_review(
            response.response_id,
            response.survey_id,
            response.interviewer_id,
        )
        SurveyResponse.objects.filter(pk=response.pk, review_enqueued_at__isnull=True).update(
            review_enqueued_at=timezone.now()
        )
