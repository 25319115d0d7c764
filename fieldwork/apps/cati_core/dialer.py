from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from django.contrib.auth import get_user_model
from django.db import transaction

from .exceptions import Forbidden, NotFound, ValidationFailure
from .models import (
    CallAttempt,
    CallRecord,
    CatiSurvey,
    InterviewSession,
    QueueEntry,
    RequeuePolicy,
    SurveyInterviewer,
    ensure_interviewer_profile,
    mask_phone_number,
    normalize_phone,
    resolve_abandon_policy,
)
from .queueing import initialize_respondent_queue
from .telephony import CallInitiationResult, configured_ring_seconds, get_telephony_adapter

User = get_user_model()

logger = logging.getLogger(__name__)


@dataclass
class StartedInterview:
    entry: QueueEntry
    session: InterviewSession
    interviewer_phone: str
    assigned_area_codes: list[str] = field(default_factory=list)

    @property
    def requires_area_selection(self) -> bool:
        # CATI responses take the area code from the calling list.
        return False


@dataclass
class CallOutcome:
    entry: QueueEntry
    success: bool
    message: str = ''
    call_id: str = ''
    call_record: CallRecord | None = None
    error_code: str = ''


def get_survey(survey_id: Any) -> CatiSurvey:
    try:
        return CatiSurvey.objects.get(pk=survey_id)
    except (CatiSurvey.DoesNotExist, ValueError, TypeError):
        raise NotFound('Survey not found.')


def get_queue_entry(queue_id: Any) -> QueueEntry:
    try:
        return QueueEntry.objects.select_related('survey').get(pk=queue_id, is_deleted=False)
    except (QueueEntry.DoesNotExist, ValueError, TypeError):
        raise NotFound('Respondent not found in queue.')


def ensure_survey_access(survey: CatiSurvey, interviewer: User) -> None:
    if interviewer.is_staff or survey.owner_id == interviewer.pk:
        return
    if not SurveyInterviewer.objects.assigned().filter(survey=survey, interviewer=interviewer).exists():
        raise Forbidden('You are not assigned to this survey.')


def ensure_owner(entry: QueueEntry, interviewer: User) -> None:
    if entry.interviewer_id != interviewer.pk:
        raise Forbidden()


def start_interview(survey_id: Any, interviewer: User) -> StartedInterview:
    survey = get_survey(survey_id)
    if not survey.is_active:
        raise ValidationFailure('Survey is not active.', status=survey.status)
    ensure_survey_access(survey, interviewer)

    initialize_respondent_queue(survey)
    entry = QueueEntry.claim_next(survey=survey, interviewer=interviewer)

    profile = ensure_interviewer_profile(interviewer)
    interviewer_phone = normalize_phone(profile.phone)
    if not interviewer_phone:
        entry.release_claim(interviewer)
        raise ValidationFailure('Interviewer phone number not found. Please update your profile.')

    session = (
        InterviewSession.objects.filter(
            queue_entry=entry,
            interviewer=interviewer,
            status=InterviewSession.STATUS_ACTIVE,
        )
        .order_by('-start_time')
        .first()
    )
    if session is None:
        session = InterviewSession.objects.create(
            survey=survey,
            interviewer=interviewer,
            queue_entry=entry,
            metadata={'respondent_phone': entry.respondent_phone},
        )
    logger.info(
        'Interview session %s started for entry %s (%s)',
        session.session_id,
        entry.pk,
        mask_phone_number(entry.respondent_phone),
    )
    assignment = (
        SurveyInterviewer.objects.assigned().filter(survey=survey, interviewer=interviewer).first()
    )
    return StartedInterview(
        entry=entry,
        session=session,
        interviewer_phone=interviewer_phone,
        assigned_area_codes=list(assignment.assigned_area_codes) if assignment else [],
    )


def place_call(entry: QueueEntry, interviewer: User, *, interviewer_phone: str | None = None) -> CallOutcome:
    """Dial the respondent through the telephony adapter.

    Provider failures never raise: the entry goes back to the tail of the
    queue and the caller gets the provider's message on the outcome.
    """
    ensure_owner(entry, interviewer)
    if entry.status not in QueueEntry.ACTIVE_STATUSES:
        raise ValidationFailure('Respondent is not ready to be called.', status=entry.status)

    if interviewer_phone is None:
        interviewer_phone = ensure_interviewer_profile(interviewer).phone
    from_number = normalize_phone(interviewer_phone)
    to_number = normalize_phone(entry.respondent_phone)
    if not from_number:
        raise ValidationFailure('Interviewer phone number not found. Please update your profile.')

    adapter = get_telephony_adapter()
    ring_seconds = configured_ring_seconds()
    result: CallInitiationResult = adapter.initiate_call(
        from_number,
        to_number,
        from_ring_seconds=ring_seconds,
        to_ring_seconds=ring_seconds,
    )

    if not result.success:
        return _apply_call_failure(entry, interviewer, result)

    with transaction.atomic():
        record = CallRecord.objects.create(
            call_id=result.call_id,
            survey=entry.survey,
            queue_entry=entry,
            created_by=interviewer,
            from_number=from_number,
            to_number=to_number,
            provider_response=result.details,
        )
        CallAttempt.record(
            entry,
            attempted_by=interviewer,
            outcome=CallAttempt.OUTCOME_INITIATED,
            call_id=result.call_id,
        )
        if not entry.mark_calling(interviewer, call_record=record):
            logger.warning('Entry %s was released while call %s was being placed', entry.pk, result.call_id)
            raise Forbidden('Respondent is no longer held by you.')
    logger.info('Call %s initiated for entry %s', result.call_id, entry.pk)
    return CallOutcome(entry=entry, success=True, call_id=result.call_id, call_record=record)


def _apply_call_failure(entry: QueueEntry, interviewer: User, result: CallInitiationResult) -> CallOutcome:
    message = result.message or 'Call initiation failed.'
    with transaction.atomic():
        CallAttempt.record(
            entry,
            attempted_by=interviewer,
            outcome=CallAttempt.OUTCOME_FAILED,
            reason=message,
        )
        if not entry.requeue_to_tail(interviewer):
            logger.warning('Entry %s was released before its failed call was recorded', entry.pk)
    logger.warning(
        'Call initiation failed for entry %s (%s): %s',
        entry.pk,
        mask_phone_number(entry.respondent_phone),
        message,
    )
    return CallOutcome(entry=entry, success=False, message=message, error_code=result.error_code)


def _may_abandon_unowned(entry: QueueEntry, interviewer: User) -> bool:
    # Only the dial-failure path, which has already cleared ownership.
    if entry.status != QueueEntry.STATUS_PENDING or entry.interviewer_id is not None:
        return False
    attempt = entry.latest_attempt()
    return (
        attempt is not None
        and attempt.outcome == CallAttempt.OUTCOME_FAILED
        and attempt.attempted_by_id == interviewer.pk
    )


def abandon(
    entry: QueueEntry,
    interviewer: User,
    *,
    reason: str | None = None,
    notes: str = '',
    call_later_date: datetime | None = None,
) -> QueueEntry:
    if entry.interviewer_id == interviewer.pk and entry.status in QueueEntry.ACTIVE_STATUSES:
        owner: User | None = interviewer
        expected = QueueEntry.ACTIVE_STATUSES
    elif _may_abandon_unowned(entry, interviewer):
        owner = None
        expected = (QueueEntry.STATUS_PENDING,)
    else:
        raise Forbidden()

    policy = resolve_abandon_policy(reason)
    scheduled_for = call_later_date if policy.requeue is RequeuePolicy.BOOST else None

    with transaction.atomic():
        attempt = entry.latest_attempt()
        current_claim = owner is not None and attempt is not None and (
            entry.claimed_at is None or attempt.attempted_at >= entry.claimed_at
        )
        if owner is None or current_claim:
            attempt.outcome = policy.label
            attempt.reason = reason or ''
            attempt.notes = notes or ''
            attempt.scheduled_for = scheduled_for
            attempt.save(update_fields=['outcome', 'reason', 'notes', 'scheduled_for'])
        else:
            CallAttempt.record(
                entry,
                attempted_by=interviewer,
                outcome=policy.label,
                reason=reason or '',
                notes=notes or '',
                scheduled_for=scheduled_for,
            )

        QueueEntry.objects.filter(pk=entry.pk).update(
            abandonment_reason=reason or '',
            abandonment_notes=notes or '',
        )
        if policy.requeue is RequeuePolicy.BOOST:
            changed = entry.requeue_with_boost(owner, call_later_date=call_later_date, expected=expected)
        elif policy.requeue is RequeuePolicy.TAIL:
            changed = entry.requeue_to_tail(owner, expected=expected)
        else:
            changed = entry.mark_terminal(owner, policy.label, expected=expected)
        if not changed:
            # Someone else moved the entry between our check and the update.
            raise Forbidden('Respondent is no longer held by you.')

    logger.info(
        'Entry %s abandoned by interviewer %s as %s (%s)',
        entry.pk,
        interviewer.pk,
        policy.label,
        entry.status,
    )
    return entry
