from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import models, transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import NoEligibleRespondent

User = get_user_model()

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D+')


def normalize_phone(value: Any) -> str:
    if value is None:
        return ''
    return _NON_DIGITS.sub('', str(value))


def new_session_id() -> str:
    return str(uuid.uuid4())


def mask_phone_number(phone_number: str | None) -> str:
    if not phone_number:
        return ''
    digits = phone_number.strip()
    if len(digits) <= 4:
        return digits
    visible = digits[:-3]
    return f"{visible}{'*' * 3}"


class InterviewerProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='cati_profile',
    )
    display_name = models.CharField(max_length=128, blank=True)
    phone = models.CharField(max_length=32, blank=True)

    class Meta:
        verbose_name = 'CATI Interviewer Profile'
        verbose_name_plural = 'CATI Interviewer Profiles'

    def __str__(self) -> str:
        return f"{self.user.username} profile"

    @property
    def resolved_display_name(self) -> str:
        if self.display_name:
            return self.display_name
        first = (self.user.first_name or '').strip()
        last = (self.user.last_name or '').strip()
        if first or last:
            return f"{first} {last}".strip()
        return self.user.username


class CatiSurvey(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_ACTIVE = 'active'
    STATUS_PAUSED = 'paused'
    STATUS_CLOSED = 'closed'

    STATUS_CHOICES = (
        (STATUS_DRAFT, 'Draft'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_PAUSED, 'Paused'),
        (STATUS_CLOSED, 'Closed'),
    )

    name = models.CharField(max_length=256)
    description = models.TextField(blank=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='owned_cati_surveys',
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    questionnaire = models.JSONField(default=dict, blank=True)
    respondent_contacts = models.JSONField(default=list, blank=True)
    location_state = models.CharField(max_length=128, blank=True)
    min_interview_seconds = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('name',)
        indexes = [models.Index(fields=('status',), name='cati_survey_status_idx')]

    def __str__(self) -> str:
        return self.name

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    def total_questions(self) -> int:
        questionnaire = self.questionnaire or {}
        total = 0
        for section in questionnaire.get('sections') or []:
            questions = section.get('questions') if isinstance(section, dict) else None
            if isinstance(questions, list):
                total += len(questions)
        if total == 0:
            questions = questionnaire.get('questions')
            if isinstance(questions, list):
                total = len(questions)
        return total


class SurveyInterviewerQuerySet(models.QuerySet):
    def assigned(self) -> 'SurveyInterviewerQuerySet':
        return self.filter(status=SurveyInterviewer.STATUS_ASSIGNED)


class SurveyInterviewer(models.Model):
    STATUS_ASSIGNED = 'assigned'
    STATUS_UNASSIGNED = 'unassigned'

    STATUS_CHOICES = (
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_UNASSIGNED, 'Unassigned'),
    )

    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='interviewers',
    )
    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='cati_assignments',
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ASSIGNED)
    assigned_area_codes = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = SurveyInterviewerQuerySet.as_manager()

    class Meta:
        unique_together = ('survey', 'interviewer')
        indexes = [models.Index(fields=('survey', 'status'), name='cati_interviewer_status_idx')]

    def __str__(self) -> str:
        return f"{self.interviewer.username} -> {self.survey.name} ({self.status})"


class RequeuePolicy(str, Enum):
    NONE = 'none'
    TAIL = 'tail'
    BOOST = 'boost'


@dataclass(frozen=True)
class AbandonPolicy:
    label: str
    requeue: RequeuePolicy


class QueueEntryQuerySet(models.QuerySet):
    def live(self) -> 'QueueEntryQuerySet':
        return self.filter(is_deleted=False)

    def pending(self) -> 'QueueEntryQuerySet':
        return self.filter(status=QueueEntry.STATUS_PENDING, is_deleted=False)

    def held_by(self, interviewer: User) -> 'QueueEntryQuerySet':
        return self.filter(
            interviewer=interviewer,
            status__in=QueueEntry.ACTIVE_STATUSES,
            is_deleted=False,
        )

    def in_service_order(self) -> 'QueueEntryQuerySet':
        return self.order_by('-priority', 'created_at', 'id')

    def release_stale_claims(self, *, ttl_minutes: int) -> int:
        cutoff = timezone.now() - timedelta(minutes=ttl_minutes)
        released = self.filter(
            status=QueueEntry.STATUS_ASSIGNED,
            claimed_at__lt=cutoff,
        ).update(
            status=QueueEntry.STATUS_PENDING,
            interviewer=None,
            claimed_at=None,
        )
        if released:
            logger.warning('Released %s stale CATI claims older than %s minutes', released, ttl_minutes)
        return released


class QueueEntry(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_CALLING = 'calling'
    STATUS_INTERVIEW_SUCCESS = 'interview_success'
    STATUS_CALL_FAILED = 'call_failed'
    STATUS_BUSY = 'busy'
    STATUS_NO_ANSWER = 'no_answer'
    STATUS_SWITCHED_OFF = 'switched_off'
    STATUS_NOT_REACHABLE = 'not_reachable'
    STATUS_DOES_NOT_EXIST = 'does_not_exist'
    STATUS_REJECTED = 'rejected'
    STATUS_NOT_INTERESTED = 'not_interested'
    STATUS_CALL_LATER = 'call_later'

    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_CALLING, 'Calling'),
        (STATUS_INTERVIEW_SUCCESS, 'Interview Success'),
        (STATUS_CALL_FAILED, 'Call Failed'),
        (STATUS_BUSY, 'Busy'),
        (STATUS_NO_ANSWER, 'No Answer'),
        (STATUS_SWITCHED_OFF, 'Switched Off'),
        (STATUS_NOT_REACHABLE, 'Not Reachable'),
        (STATUS_DOES_NOT_EXIST, 'Does Not Exist'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_NOT_INTERESTED, 'Not Interested'),
        (STATUS_CALL_LATER, 'Call Later'),
    )

    ACTIVE_STATUSES = (STATUS_ASSIGNED, STATUS_CALLING)
    TERMINAL_STATUSES = (
        STATUS_INTERVIEW_SUCCESS,
        STATUS_BUSY,
        STATUS_NO_ANSWER,
        STATUS_SWITCHED_OFF,
        STATUS_NOT_REACHABLE,
        STATUS_DOES_NOT_EXIST,
        STATUS_REJECTED,
        STATUS_NOT_INTERESTED,
    )
    # Labels that only survive in the attempt log; the live status returns to pending.
    TRANSIENT_LABELS = (STATUS_CALL_FAILED, STATUS_CALL_LATER)

    PRIORITY_DEFAULT = 0
    PRIORITY_TAIL = -1
    PRIORITY_CALL_LATER = 10

    CLAIM_RETRIES = 5

    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='queue_entries',
    )
    respondent_name = models.CharField(max_length=256, blank=True)
    respondent_country_code = models.CharField(max_length=8, blank=True)
    respondent_phone = models.CharField(max_length=32)
    respondent_email = models.CharField(max_length=254, blank=True)
    respondent_address = models.TextField(blank=True)
    respondent_city = models.CharField(max_length=128, blank=True)
    respondent_area_code = models.CharField(max_length=64, blank=True)
    respondent_precinct_code = models.CharField(max_length=64, blank=True)
    respondent_station_code = models.CharField(max_length=64, blank=True)
    normalized_phone = models.CharField(max_length=32, editable=False)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING)
    priority = models.IntegerField(default=PRIORITY_DEFAULT)
    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='cati_queue_entries',
        null=True,
        blank=True,
    )
    claimed_at = models.DateTimeField(null=True, blank=True)
    # Ordering key; rewritten on tail requeue.
    created_at = models.DateTimeField(default=timezone.now)
    imported_at = models.DateTimeField(auto_now_add=True)
    attempt_count = models.PositiveIntegerField(default=0)
    last_attempted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    response = models.ForeignKey(
        'SurveyResponse',
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    call_record = models.ForeignKey(
        'CallRecord',
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    abandonment_reason = models.CharField(max_length=32, blank=True)
    abandonment_notes = models.TextField(blank=True)
    call_later_date = models.DateTimeField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False)

    objects = QueueEntryQuerySet.as_manager()

    class Meta:
        verbose_name_plural = 'Queue entries'
        constraints = [
            models.UniqueConstraint(
                fields=('survey', 'normalized_phone'),
                condition=Q(is_deleted=False),
                name='cati_unique_live_phone_per_survey',
            ),
        ]
        indexes = [
            models.Index(fields=('survey', 'status', 'priority', 'created_at'), name='cati_queue_service_idx'),
            models.Index(fields=('survey', 'interviewer', 'status'), name='cati_queue_owner_idx'),
            models.Index(fields=('normalized_phone',), name='cati_queue_phone_idx'),
        ]

    def __str__(self) -> str:
        return f"{mask_phone_number(self.respondent_phone)} ({self.survey_id}, {self.status})"

    def save(self, *args, **kwargs) -> None:
        self.normalized_phone = normalize_phone(self.respondent_phone)
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'respondent_phone' in update_fields:
            kwargs['update_fields'] = {*update_fields, 'normalized_phone'}
        super().save(*args, **kwargs)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def respondent_snapshot(self) -> dict[str, str]:
        return {
            'name': self.respondent_name,
            'country_code': self.respondent_country_code,
            'phone': self.respondent_phone,
            'email': self.respondent_email,
            'address': self.respondent_address,
            'city': self.respondent_city,
            'area_code': self.respondent_area_code,
            'precinct_code': self.respondent_precinct_code,
            'station_code': self.respondent_station_code,
        }

    def latest_attempt(self) -> 'CallAttempt | None':
        return self.call_attempts.order_by('-attempt_number', '-id').first()

    @classmethod
    def _try_claim(cls, pk: int, interviewer: User, now: datetime) -> bool:
        # Compare-and-swap: only a still-pending, unowned row can be claimed.
        return bool(
            cls.objects.filter(
                pk=pk,
                status=cls.STATUS_PENDING,
                interviewer__isnull=True,
                is_deleted=False,
            ).update(
                status=cls.STATUS_ASSIGNED,
                interviewer=interviewer,
                claimed_at=now,
            )
        )

    @classmethod
    def claim_next(
        cls,
        *,
        survey: CatiSurvey,
        interviewer: User,
        ttl_minutes: int | None = None,
    ) -> 'QueueEntry':
        held = cls.objects.filter(survey=survey).held_by(interviewer).order_by('claimed_at', 'id').first()
        if held is not None:
            return held

        if ttl_minutes is None:
            ttl_minutes = getattr(settings, 'CATI_CLAIM_TTL_MINUTES', 30)
        cls.objects.filter(survey=survey).release_stale_claims(ttl_minutes=ttl_minutes)

        for _ in range(cls.CLAIM_RETRIES):
            now = timezone.now()
            with transaction.atomic():
                candidate = (
                    cls.objects.select_for_update(skip_locked=True)
                    .pending()
                    .filter(survey=survey, interviewer__isnull=True)
                    .in_service_order()
                    .first()
                )
                if candidate is None:
                    raise NoEligibleRespondent()
                if cls._try_claim(candidate.pk, interviewer, now):
                    candidate.refresh_from_db()
                    logger.info(
                        'Queue entry %s claimed by interviewer %s for survey %s',
                        candidate.pk,
                        interviewer.pk,
                        survey.pk,
                    )
                    return candidate
            logger.info('Lost claim race on survey %s, reselecting', survey.pk)
        raise NoEligibleRespondent()

    def _transition(self, *, expected: tuple[str, ...], owner: User | None, **updates: Any) -> bool:
        queryset = QueueEntry.objects.filter(pk=self.pk, status__in=expected)
        if owner is None:
            queryset = queryset.filter(interviewer__isnull=True)
        else:
            queryset = queryset.filter(interviewer=owner)
        changed = bool(queryset.update(**updates))
        self.refresh_from_db()
        return changed

    def release_claim(self, owner: User) -> bool:
        return self._transition(
            expected=(self.STATUS_ASSIGNED,),
            owner=owner,
            status=self.STATUS_PENDING,
            interviewer=None,
            claimed_at=None,
        )

    def mark_calling(self, owner: User, *, call_record: 'CallRecord | None' = None) -> bool:
        updates: dict[str, Any] = {'status': self.STATUS_CALLING, 'last_attempted_at': timezone.now()}
        if call_record is not None:
            updates['call_record'] = call_record
        return self._transition(expected=self.ACTIVE_STATUSES, owner=owner, **updates)

    def requeue_to_tail(self, owner: User | None, *, expected: tuple[str, ...] | None = None) -> bool:
        now = timezone.now()
        return self._transition(
            expected=expected or self.ACTIVE_STATUSES,
            owner=owner,
            status=self.STATUS_PENDING,
            priority=self.PRIORITY_TAIL,
            interviewer=None,
            claimed_at=None,
            created_at=now,
        )

    def requeue_with_boost(
        self,
        owner: User | None,
        *,
        call_later_date: datetime | None,
        expected: tuple[str, ...] | None = None,
    ) -> bool:
        # Age is preserved so boosted callbacks cannot starve older work forever.
        return self._transition(
            expected=expected or self.ACTIVE_STATUSES,
            owner=owner,
            status=self.STATUS_PENDING,
            priority=self.PRIORITY_CALL_LATER,
            interviewer=None,
            claimed_at=None,
            call_later_date=call_later_date,
        )

    def mark_terminal(self, owner: User | None, status: str, *, expected: tuple[str, ...] | None = None) -> bool:
        if status not in self.TERMINAL_STATUSES or status == self.STATUS_INTERVIEW_SUCCESS:
            raise ValueError(f'{status} is not a terminal abandonment outcome.')
        return self._transition(expected=expected or self.ACTIVE_STATUSES, owner=owner, status=status)

    def mark_interview_success(self, owner: User, response: 'SurveyResponse') -> bool:
        return self._transition(
            expected=(self.STATUS_CALLING, self.STATUS_INTERVIEW_SUCCESS),
            owner=owner,
            status=self.STATUS_INTERVIEW_SUCCESS,
            response=response,
            completed_at=timezone.now(),
        )


ABANDON_POLICIES: dict[str, AbandonPolicy] = {
    'call_later': AbandonPolicy(QueueEntry.STATUS_CALL_LATER, RequeuePolicy.BOOST),
    'not_interested': AbandonPolicy(QueueEntry.STATUS_NOT_INTERESTED, RequeuePolicy.NONE),
    'busy': AbandonPolicy(QueueEntry.STATUS_BUSY, RequeuePolicy.NONE),
    'no_answer': AbandonPolicy(QueueEntry.STATUS_NO_ANSWER, RequeuePolicy.NONE),
    'switched_off': AbandonPolicy(QueueEntry.STATUS_SWITCHED_OFF, RequeuePolicy.NONE),
    'not_reachable': AbandonPolicy(QueueEntry.STATUS_NOT_REACHABLE, RequeuePolicy.NONE),
    'does_not_exist': AbandonPolicy(QueueEntry.STATUS_DOES_NOT_EXIST, RequeuePolicy.NONE),
    'rejected': AbandonPolicy(QueueEntry.STATUS_REJECTED, RequeuePolicy.NONE),
    'technical_issue': AbandonPolicy(QueueEntry.STATUS_CALL_FAILED, RequeuePolicy.TAIL),
    'other': AbandonPolicy(QueueEntry.STATUS_CALL_FAILED, RequeuePolicy.TAIL),
}
DEFAULT_ABANDON_POLICY = AbandonPolicy(QueueEntry.STATUS_CALL_FAILED, RequeuePolicy.TAIL)


def resolve_abandon_policy(reason: str | None) -> AbandonPolicy:
    if not reason:
        return DEFAULT_ABANDON_POLICY
    return ABANDON_POLICIES.get(reason, DEFAULT_ABANDON_POLICY)


class CallAttempt(models.Model):
    OUTCOME_INITIATED = 'initiated'
    OUTCOME_FAILED = 'failed'

    queue_entry = models.ForeignKey(
        QueueEntry,
        on_delete=models.PROTECT,
        related_name='call_attempts',
    )
    attempt_number = models.PositiveIntegerField()
    attempted_at = models.DateTimeField(default=timezone.now)
    attempted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    outcome = models.CharField(max_length=32)
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    call_id = models.CharField(max_length=128, blank=True)
    scheduled_for = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ('attempt_number', 'id')
        indexes = [models.Index(fields=('queue_entry', 'attempt_number'), name='cati_attempt_entry_idx')]

    def __str__(self) -> str:
        return f"Attempt {self.attempt_number} on entry {self.queue_entry_id} ({self.outcome})"

    @classmethod
    def record(
        cls,
        entry: QueueEntry,
        *,
        attempted_by: User | None,
        outcome: str,
        reason: str = '',
        notes: str = '',
        call_id: str = '',
        scheduled_for: datetime | None = None,
    ) -> 'CallAttempt':
        now = timezone.now()
        with transaction.atomic():
            QueueEntry.objects.filter(pk=entry.pk).update(
                attempt_count=F('attempt_count') + 1,
                last_attempted_at=now,
            )
            entry.refresh_from_db(fields=['attempt_count', 'last_attempted_at'])
            return cls.objects.create(
                queue_entry=entry,
                attempt_number=entry.attempt_count,
                attempted_at=now,
                attempted_by=attempted_by,
                outcome=outcome,
                reason=reason or '',
                notes=notes or '',
                call_id=call_id or '',
                scheduled_for=scheduled_for,
            )


class CallRecord(models.Model):
    STATUS_RINGING = 'ringing'
    STATUS_ANSWERED = 'answered'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = (
        (STATUS_RINGING, 'Ringing'),
        (STATUS_ANSWERED, 'Answered'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    )

    call_id = models.CharField(max_length=128, db_index=True)
    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='call_records',
    )
    queue_entry = models.ForeignKey(
        QueueEntry,
        on_delete=models.PROTECT,
        related_name='call_records',
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    from_number = models.CharField(max_length=32)
    to_number = models.CharField(max_length=32)
    from_type = models.CharField(max_length=16, default='Number')
    to_type = models.CharField(max_length=16, default='Number')
    call_status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_RINGING)
    webhook_received = models.BooleanField(default=False)
    provider_response = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=('queue_entry', 'created_at'), name='cati_call_entry_idx')]

    def __str__(self) -> str:
        return f"Call {self.call_id} ({self.call_status})"


class InterviewSession(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_PAUSED = 'paused'
    STATUS_ABANDONED = 'abandoned'
    STATUS_COMPLETED = 'completed'

    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_PAUSED, 'Paused'),
        (STATUS_ABANDONED, 'Abandoned'),
        (STATUS_COMPLETED, 'Completed'),
    )

    session_id = models.CharField(max_length=64, unique=True, default=new_session_id)
    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='sessions',
    )
    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='cati_sessions',
    )
    queue_entry = models.ForeignKey(
        QueueEntry,
        on_delete=models.SET_NULL,
        related_name='sessions',
        null=True,
        blank=True,
    )
    interview_mode = models.CharField(max_length=16, default='cati')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    start_time = models.DateTimeField(default=timezone.now)
    last_activity_time = models.DateTimeField(default=timezone.now)
    total_time_spent = models.PositiveIntegerField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    def __str__(self) -> str:
        return f"Session {self.session_id} ({self.status})"

    def mark_completed(self) -> None:
        self.status = self.STATUS_COMPLETED
        self.last_activity_time = timezone.now()
        self.save(update_fields=['status', 'last_activity_time'])


class SurveyResponse(models.Model):
    STATUS_PENDING_APPROVAL = 'Pending_Approval'
    STATUS_APPROVED = 'Approved'
    STATUS_REJECTED = 'Rejected'

    STATUS_CHOICES = (
        (STATUS_PENDING_APPROVAL, 'Pending Approval'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    )

    response_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    session_id = models.CharField(max_length=64, unique=True)
    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='responses',
    )
    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='cati_responses',
    )
    queue_entry = models.OneToOneField(
        QueueEntry,
        on_delete=models.SET_NULL,
        related_name='survey_response',
        null=True,
        blank=True,
    )
    interview_mode = models.CharField(max_length=16, default='cati')
    call_id = models.CharField(max_length=128, blank=True)
    set_number = models.PositiveSmallIntegerField(null=True, blank=True)
    answers = models.JSONField(default=list, blank=True)
    selected_area_code = models.CharField(max_length=64, blank=True)
    selected_station = models.JSONField(default=dict, blank=True)
    legacy_interviewer_id = models.CharField(max_length=64, blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    total_time_spent = models.PositiveIntegerField(default=0)
    total_questions = models.PositiveIntegerField(default=0)
    answered_questions = models.PositiveIntegerField(default=0)
    skipped_questions = models.IntegerField(default=0)
    completion_percentage = models.PositiveSmallIntegerField(default=0)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING_APPROVAL)
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    feedback = models.TextField(blank=True)
    auto_rejected = models.BooleanField(default=False)
    auto_rejection_reasons = models.JSONField(default=list, blank=True)
    review_enqueued_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=('survey', 'status'), name='cati_response_status_idx'),
            models.Index(fields=('interviewer', 'created_at'), name='cati_response_owner_idx'),
        ]

    def __str__(self) -> str:
        return f"Response {self.response_id} ({self.status})"


class SetRecord(models.Model):
    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='set_records',
    )
    response = models.OneToOneField(
        SurveyResponse,
        on_delete=models.CASCADE,
        related_name='set_record',
    )
    set_number = models.PositiveSmallIntegerField()
    interview_mode = models.CharField(max_length=16, default='cati')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=('survey', 'set_number'), name='cati_set_survey_idx')]

    def __str__(self) -> str:
        return f"Set {self.set_number} for {self.response_id}"


class DuplicateContactRuleQuerySet(models.QuerySet):
    def active(self) -> 'DuplicateContactRuleQuerySet':
        return self.filter(is_active=True)


class DuplicateContactRule(models.Model):
    SELECTOR_TEXT = 'text'
    SELECTOR_TAG = 'tag'
    SELECTOR_PATTERN = 'pattern'

    SELECTOR_CHOICES = (
        (SELECTOR_TEXT, 'Exact question text'),
        (SELECTOR_TAG, 'Question tag'),
        (SELECTOR_PATTERN, 'Question text pattern'),
    )

    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='duplicate_contact_rules',
    )
    selector_kind = models.CharField(max_length=16, choices=SELECTOR_CHOICES, default=SELECTOR_TEXT)
    selector_value = models.TextField()
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = DuplicateContactRuleQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=('survey', 'selector_kind', 'selector_value'),
                name='cati_unique_contact_rule',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.survey_id}: {self.selector_kind}={self.selector_value[:40]}"

    def matches(self, answer: dict[str, Any]) -> bool:
        question_text = _answer_question_text(answer)
        if self.selector_kind == self.SELECTOR_TEXT:
            return question_text.strip().lower() == self.selector_value.strip().lower()
        if self.selector_kind == self.SELECTOR_TAG:
            tags = answer.get('tags') or []
            if isinstance(tags, str):
                tags = [tags]
            tag = answer.get('questionTag') or answer.get('tag')
            if tag:
                tags = [*tags, tag]
            wanted = self.selector_value.strip().lower()
            return any(str(item).strip().lower() == wanted for item in tags)
        if self.selector_kind == self.SELECTOR_PATTERN:
            try:
                return re.search(self.selector_value, question_text, re.IGNORECASE) is not None
            except re.error:
                logger.warning('Invalid duplicate-contact pattern on rule %s', self.pk)
                return False
        return False


def _answer_question_text(answer: dict[str, Any]) -> str:
    text = answer.get('questionText')
    if not text:
        question = answer.get('question')
        if isinstance(question, dict):
            text = question.get('text')
    return str(text or '')


class ReviewQueueItem(models.Model):
    STATUS_QUEUED = 'queued'
    STATUS_IN_REVIEW = 'in_review'
    STATUS_DONE = 'done'

    STATUS_CHOICES = (
        (STATUS_QUEUED, 'Queued'),
        (STATUS_IN_REVIEW, 'In Review'),
        (STATUS_DONE, 'Done'),
    )

    response = models.OneToOneField(
        SurveyResponse,
        on_delete=models.CASCADE,
        related_name='review_item',
    )
    survey = models.ForeignKey(
        CatiSurvey,
        on_delete=models.CASCADE,
        related_name='review_items',
    )
    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='+',
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_QUEUED)
    batch_date = models.DateField(default=timezone.localdate)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ('created_at',)
        indexes = [models.Index(fields=('survey', 'batch_date', 'status'), name='cati_review_batch_idx')]

    def __str__(self) -> str:
        return f"Review of {self.response_id} ({self.status})"


def ensure_interviewer_profile(user: User) -> InterviewerProfile:
    profile, _ = InterviewerProfile.objects.get_or_create(user=user)
    return profile
