from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .models import DuplicateContactRule, SurveyResponse

logger = logging.getLogger(__name__)

REASON_DURATION = 'duration'
REASON_DUPLICATE_PHONE = 'duplicate_phone'

REASON_LABELS = {
    REASON_DURATION: 'Interview Too Short',
    REASON_DUPLICATE_PHONE: 'Duplicate Phone Number',
}

DEFAULT_MIN_INTERVIEW_SECONDS = 180

_NOT_ALNUM = re.compile(r'[\W_]+')


@dataclass
class RejectionVerdict:
    reasons: list[str] = field(default_factory=list)

    @property
    def feedback(self) -> str:
        return '; '.join(REASON_LABELS[reason] for reason in self.reasons)

    def __bool__(self) -> bool:
        return bool(self.reasons)


def normalize_contact_value(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else None
    elif isinstance(value, dict):
        value = value.get('phone') or value.get('value') or value.get('text')
    if value is None or isinstance(value, (dict, list, bool)):
        return ''
    return _NOT_ALNUM.sub('', str(value)).lower()


def minimum_interview_seconds(survey) -> int:
    if survey is not None and survey.min_interview_seconds is not None:
        return survey.min_interview_seconds
    return getattr(settings, 'CATI_MIN_INTERVIEW_SECONDS', DEFAULT_MIN_INTERVIEW_SECONDS)


def extract_contact_number(answers: Iterable[dict[str, Any]], rules: list[DuplicateContactRule]) -> str:
    for answer in answers or []:
        if not isinstance(answer, dict):
            continue
        if any(rule.matches(answer) for rule in rules):
            normalized = normalize_contact_value(answer.get('response'))
            if normalized:
                return normalized
    return ''


def _has_duplicate_contact(response: SurveyResponse, contact: str, rules: list[DuplicateContactRule]) -> bool:
    siblings = (
        SurveyResponse.objects.filter(survey_id=response.survey_id)
        .exclude(pk=response.pk)
        .only('pk', 'answers')
        .iterator()
    )
    for sibling in siblings:
        if extract_contact_number(sibling.answers, rules) == contact:
            return True
    return False


def evaluate(
    response: SurveyResponse,
    answers: Iterable[dict[str, Any]] | None = None,
    survey=None,
) -> RejectionVerdict | None:
    """Run the auto-rejection rules against a persisted response.

    Both rules are independent; every firing rule contributes a reason.
    Returns ``None`` when nothing fires.
    """
    survey = survey or response.survey
    if answers is None:
        answers = response.answers
    verdict = RejectionVerdict()

    threshold = minimum_interview_seconds(survey)
    if response.total_time_spent and response.total_time_spent < threshold:
        verdict.reasons.append(REASON_DURATION)

    rules = list(DuplicateContactRule.objects.active().filter(survey=survey))
    if rules:
        contact = extract_contact_number(answers, rules)
        if contact and _has_duplicate_contact(response, contact, rules):
            verdict.reasons.append(REASON_DUPLICATE_PHONE)

    return verdict or None


def apply_verdict(response: SurveyResponse, verdict: RejectionVerdict | None) -> bool:
    if not verdict:
        return False
    with transaction.atomic():
        # Only the verdict fields are written so the administered set survives.
        applied = SurveyResponse.objects.filter(pk=response.pk, reviewer__isnull=True).update(
            status=SurveyResponse.STATUS_REJECTED,
            reviewed_at=timezone.now(),
            feedback=verdict.feedback,
            auto_rejected=True,
            auto_rejection_reasons=list(verdict.reasons),
            updated_at=timezone.now(),
        )
    response.refresh_from_db()
    if applied:
        logger.info('Auto-rejected response %s: %s', response.response_id, verdict.feedback)
    else:
        logger.info('Skipped auto-rejection of reviewed response %s', response.response_id)
    return bool(applied)
