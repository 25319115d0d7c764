from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable

from django.db import transaction

from .models import CatiSurvey, QueueEntry, mask_phone_number, normalize_phone

logger = logging.getLogger(__name__)

# Contact keys accepted from the ingestion collaborator, mapped to entry columns.
CONTACT_FIELDS = {
    'name': 'respondent_name',
    'countryCode': 'respondent_country_code',
    'country_code': 'respondent_country_code',
    'phone': 'respondent_phone',
    'email': 'respondent_email',
    'address': 'respondent_address',
    'city': 'respondent_city',
    'ac': 'respondent_area_code',
    'area_code': 'respondent_area_code',
    'pc': 'respondent_precinct_code',
    'precinct_code': 'respondent_precinct_code',
    'ps': 'respondent_station_code',
    'station_code': 'respondent_station_code',
}

BULK_BATCH_SIZE = 500
# Trailing digits compared by the duplicate audit, so "+91 98765 43210" and
# "98765-43210" land in the same group.
DUPLICATE_KEY_DIGITS = 10


@dataclass
class QueueSeedResult:
    created: int = 0
    skipped_duplicates: int = 0
    skipped_invalid: int = 0


@dataclass
class DuplicateGroup:
    normalized_phone: str
    kept: QueueEntry
    duplicates: list[QueueEntry] = field(default_factory=list)


def _entry_from_contact(survey: CatiSurvey, contact: dict[str, Any]) -> QueueEntry:
    values: dict[str, str] = {}
    for key, column in CONTACT_FIELDS.items():
        value = contact.get(key)
        if value is None or column in values:
            continue
        values[column] = str(value).strip()
    entry = QueueEntry(survey=survey, **values)
    entry.normalized_phone = normalize_phone(entry.respondent_phone)
    return entry


def initialize_respondent_queue(
    survey: CatiSurvey,
    contacts: Iterable[dict[str, Any]] | None = None,
) -> QueueSeedResult:
    """Seed the survey queue from its respondent contact list.

    Phones already live in the queue are skipped, as are repeats within the
    batch. Existing entries are never touched, terminal ones included.
    """
    if contacts is None:
        contacts = survey.respondent_contacts or []

    result = QueueSeedResult()
    existing = set(
        QueueEntry.objects.live().filter(survey=survey).values_list('normalized_phone', flat=True)
    )
    to_create: list[QueueEntry] = []
    for contact in contacts:
        if not isinstance(contact, dict):
            result.skipped_invalid += 1
            continue
        entry = _entry_from_contact(survey, contact)
        if not entry.normalized_phone:
            result.skipped_invalid += 1
            logger.warning('Skipping contact without a usable phone for survey %s', survey.pk)
            continue
        if entry.normalized_phone in existing:
            result.skipped_duplicates += 1
            continue
        existing.add(entry.normalized_phone)
        to_create.append(entry)

    if not to_create:
        return result

    with transaction.atomic():
        before = QueueEntry.objects.live().filter(survey=survey).count()
        # A concurrent initializer may insert the same phones; the partial
        # unique constraint rejects them and ignore_conflicts drops them.
        QueueEntry.objects.bulk_create(to_create, batch_size=BULK_BATCH_SIZE, ignore_conflicts=True)
        after = QueueEntry.objects.live().filter(survey=survey).count()

    result.created = after - before
    result.skipped_duplicates += len(to_create) - result.created
    logger.info(
        'Seeded %s queue entries for survey %s (%s duplicates, %s invalid)',
        result.created,
        survey.pk,
        result.skipped_duplicates,
        result.skipped_invalid,
    )
    return result


def find_duplicate_entries(survey: CatiSurvey) -> list[DuplicateGroup]:
    grouped: dict[str, list[QueueEntry]] = defaultdict(list)
    entries = QueueEntry.objects.live().filter(survey=survey).order_by('imported_at', 'id')
    for entry in entries:
        key = (entry.normalized_phone or normalize_phone(entry.respondent_phone))[-DUPLICATE_KEY_DIGITS:]
        if key:
            grouped[key].append(entry)
    return [
        DuplicateGroup(normalized_phone=phone, kept=rows[0], duplicates=rows[1:])
        for phone, rows in grouped.items()
        if len(rows) > 1
    ]


def remove_duplicate_entries(survey: CatiSurvey) -> int:
    """Soft-delete later duplicates that have not been worked yet."""
    removed = 0
    for group in find_duplicate_entries(survey):
        pending_ids = [
            entry.pk
            for entry in group.duplicates
            if entry.status == QueueEntry.STATUS_PENDING and entry.interviewer_id is None
        ]
        if not pending_ids:
            continue
        removed += QueueEntry.objects.filter(
            pk__in=pending_ids,
            status=QueueEntry.STATUS_PENDING,
            interviewer__isnull=True,
        ).update(is_deleted=True)
        logger.info(
            'Soft-deleted %s duplicate entries for %s in survey %s',
            len(pending_ids),
            mask_phone_number(group.normalized_phone),
            survey.pk,
        )
    return removed
