from __future__ import annotations

import logging
from typing import Any, Protocol

from django.conf import settings
from django.utils.module_loading import import_string

from .models import ReviewQueueItem, SurveyResponse

logger = logging.getLogger(__name__)


class ReviewIntake(Protocol):
    def enqueue_for_review(self, response_id: Any, survey_id: Any, interviewer_id: Any) -> None:
        ...


class DatabaseReviewIntake:
    """Queues finished responses for the quality-review team."""

    def enqueue_for_review(self, response_id: Any, survey_id: Any, interviewer_id: Any) -> None:
        response = SurveyResponse.objects.get(response_id=response_id)
        item, created = ReviewQueueItem.objects.get_or_create(
            response=response,
            defaults={'survey_id': survey_id, 'interviewer_id': interviewer_id},
        )
        if created:
            logger.info('Response %s queued for review (survey %s)', response_id, survey_id)


def get_review_intake() -> ReviewIntake:
    path = getattr(settings, 'CATI_REVIEW_INTAKE', 'fieldwork.apps.cati_core.review.DatabaseReviewIntake')
    return import_string(path)()
