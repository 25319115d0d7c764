from unittest import mock

from django.test import TestCase, override_settings

from fieldwork.apps.cati_core import dialer
from fieldwork.apps.cati_core.completion import (
    CompletionPayload,
    CompletionProcessor,
    is_answered,
    write_with_verification,
)
from fieldwork.apps.cati_core.exceptions import (
    Forbidden,
    NotFound,
    PersistenceInconsistency,
    ValidationFailure,
)
from fieldwork.apps.cati_core.models import (
    DuplicateContactRule,
    InterviewSession,
    QueueEntry,
    ReviewQueueItem,
    SetRecord,
    SurveyResponse,
)
from fieldwork.apps.cati_core.telephony import CallInitiationResult

from .base import PHONE_QUESTION, CatiFixturesMixin

ANSWERS = [
    {'questionId': 'q1', 'questionText': 'Age?', 'response': '34'},
    {'questionId': 'q2', 'questionText': 'Issues?', 'response': ['roads', 'water']},
    {'questionId': 'q3', 'questionText': 'Comments', 'response': ''},
    {'questionId': 'interviewer-id', 'questionText': 'Interviewer ID', 'response': 'EMP-77'},
]


class CompletionTests(CatiFixturesMixin, TestCase):
    def setUp(self):
        self.manager = self.make_user('manager')
        self.alice = self.make_user('alice', phone='9000000001')
        self.bob = self.make_user('bob', phone='9000000002')
        self.survey = self.make_survey(self.manager)
        self.make_entry(self.survey, '9800000001')
        self.entry = self._dial_next()
        self.session = self.make_session(self.entry, self.alice)
        self.intake = mock.Mock()
        self.processor = CompletionProcessor(review_intake=self.intake)

    def _dial_next(self) -> QueueEntry:
        entry = QueueEntry.claim_next(survey=self.survey, interviewer=self.alice)
        adapter = mock.Mock()
        adapter.initiate_call.return_value = CallInitiationResult(success=True, call_id='CALL-42')
        with mock.patch('fieldwork.apps.cati_core.dialer.get_telephony_adapter', return_value=adapter):
            dialer.place_call(entry, self.alice)
        entry.refresh_from_db()
        return entry

    def _payload(self, **overrides) -> CompletionPayload:
        values = {'session_id': self.session.session_id, 'answers': list(ANSWERS), 'total_time_spent': 420}
        values.update(overrides)
        return CompletionPayload(**values)

    def test_completion_creates_response_and_closes_entry(self):
        finalized = self.processor.complete(self.entry.pk, self.alice, self._payload())

        self.assertEqual(finalized.status, SurveyResponse.STATUS_PENDING_APPROVAL)
        response = SurveyResponse.objects.get(response_id=finalized.response_id)
        self.assertEqual(response.session_id, self.session.session_id)
        self.assertEqual(response.queue_entry_id, self.entry.pk)
        self.assertEqual(response.call_id, 'CALL-42')
        self.assertEqual(response.legacy_interviewer_id, 'EMP-77')
        self.assertEqual(response.total_questions, 4)
        self.assertEqual(response.answered_questions, 3)
        self.assertEqual(response.skipped_questions, 1)
        self.assertEqual(response.completion_percentage, 75)

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, QueueEntry.STATUS_INTERVIEW_SUCCESS)
        self.assertEqual(self.entry.response_id, response.pk)
        self.assertIsNotNone(self.entry.completed_at)
        self.session.refresh_from_db()
        self.assertEqual(self.session.status, InterviewSession.STATUS_COMPLETED)

    def test_location_codes_come_from_respondent_snapshot(self):
        finalized = self.processor.complete(self.entry.pk, self.alice, self._payload())

        response = finalized.response
        self.assertEqual(response.selected_area_code, '151')
        self.assertEqual(
            response.selected_station,
            {'acName': '151', 'pcName': '24', 'state': 'Karnataka'},
        )

    def test_repeated_completion_updates_single_response(self):
        first = self.processor.complete(self.entry.pk, self.alice, self._payload())
        second = self.processor.complete(
            self.entry.pk,
            self.alice,
            self._payload(total_time_spent=500, answered_questions=4),
        )

        self.assertEqual(first.response_id, second.response_id)
        self.assertEqual(SurveyResponse.objects.count(), 1)
        response = SurveyResponse.objects.get()
        self.assertEqual(response.total_time_spent, 500)
        self.assertEqual(response.answered_questions, 4)

    def test_set_number_is_mirrored_to_set_record(self):
        finalized = self.processor.complete(self.entry.pk, self.alice, self._payload(set_number=2))

        response = SurveyResponse.objects.get(response_id=finalized.response_id)
        self.assertEqual(response.set_number, 2)
        self.assertEqual(SetRecord.objects.get(response=response).set_number, 2)

    def test_retry_without_set_number_keeps_stored_value(self):
        self.processor.complete(self.entry.pk, self.alice, self._payload(set_number=2))
        self.processor.complete(self.entry.pk, self.alice, self._payload())

        response = SurveyResponse.objects.get()
        self.assertEqual(response.set_number, 2)
        self.assertEqual(response.set_record.set_number, 2)

    def test_accepted_response_is_handed_to_review_once(self):
        finalized = self.processor.complete(self.entry.pk, self.alice, self._payload())
        self.processor.complete(self.entry.pk, self.alice, self._payload())

        self.intake.enqueue_for_review.assert_called_once_with(
            finalized.response.response_id, self.survey.pk, self.alice.pk
        )
        self.assertIsNotNone(SurveyResponse.objects.get().review_enqueued_at)

    def test_auto_rejected_response_reports_pending_approval(self):
        finalized = self.processor.complete(
            self.entry.pk, self.alice, self._payload(total_time_spent=90, set_number=3)
        )

        self.assertEqual(finalized.status, SurveyResponse.STATUS_PENDING_APPROVAL)
        response = SurveyResponse.objects.get()
        self.assertEqual(response.status, SurveyResponse.STATUS_REJECTED)
        self.assertTrue(response.auto_rejected)
        self.assertEqual(response.set_number, 3)
        self.intake.enqueue_for_review.assert_not_called()
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, QueueEntry.STATUS_INTERVIEW_SUCCESS)

    def test_duplicate_contact_against_earlier_response(self):
        DuplicateContactRule.objects.create(survey=self.survey, selector_value=PHONE_QUESTION)
        self.make_response(self.survey, self.bob, session_id='earlier', contact='98765 43210')
        answers = [*ANSWERS, {'questionText': PHONE_QUESTION, 'response': '9876543210'}]

        self.processor.complete(self.entry.pk, self.alice, self._payload(answers=answers))

        response = SurveyResponse.objects.get(session_id=self.session.session_id)
        self.assertEqual(response.status, SurveyResponse.STATUS_REJECTED)
        self.assertEqual(response.auto_rejection_reasons, ['duplicate_phone'])

    def test_review_failure_does_not_abort_completion(self):
        self.intake.enqueue_for_review.side_effect = RuntimeError('review service down')

        with self.assertLogs('fieldwork.apps.cati_core.completion', level='ERROR'):
            finalized = self.processor.complete(self.entry.pk, self.alice, self._payload())

        self.assertEqual(finalized.status, SurveyResponse.STATUS_PENDING_APPROVAL)
        self.assertIsNone(SurveyResponse.objects.get().review_enqueued_at)
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, QueueEntry.STATUS_INTERVIEW_SUCCESS)

    def test_session_of_another_entry_is_rejected(self):
        first = self.processor.complete(self.entry.pk, self.alice, self._payload())
        self.make_entry(self.survey, '9800000002')
        second_entry = self._dial_next()
        answers = [{'questionId': 'q1', 'questionText': 'Age?', 'response': '58'}]

        with self.assertRaises(ValidationFailure):
            self.processor.complete(second_entry.pk, self.alice, self._payload(answers=answers))

        response = SurveyResponse.objects.get()
        self.assertEqual(str(response.response_id), first.response_id)
        self.assertEqual(response.queue_entry_id, self.entry.pk)
        self.assertEqual(response.answers, ANSWERS)
        second_entry.refresh_from_db()
        self.assertEqual(second_entry.status, QueueEntry.STATUS_CALLING)
        self.assertIsNone(second_entry.response_id)

    def test_unbound_session_reused_for_another_entry_is_rejected(self):
        loose = InterviewSession.objects.create(survey=self.survey, interviewer=self.alice)
        self.processor.complete(self.entry.pk, self.alice, self._payload(session_id=loose.session_id))
        self.make_entry(self.survey, '9800000002')
        second_entry = self._dial_next()

        with self.assertRaises(ValidationFailure):
            self.processor.complete(second_entry.pk, self.alice, self._payload(session_id=loose.session_id))

        self.assertEqual(SurveyResponse.objects.count(), 1)
        self.assertEqual(SurveyResponse.objects.get().queue_entry_id, self.entry.pk)

    def test_zero_duration_falls_back_to_session_timing(self):
        self.processor.complete(self.entry.pk, self.alice, self._payload(total_time_spent=0))

        response = SurveyResponse.objects.get()
        self.assertGreaterEqual(response.total_time_spent, 590)
        self.assertFalse(response.auto_rejected)
        self.assertEqual(response.status, SurveyResponse.STATUS_PENDING_APPROVAL)

    def test_other_interviewer_is_forbidden(self):
        with self.assertRaises(Forbidden):
            self.processor.complete(self.entry.pk, self.bob, self._payload())
        self.assertFalse(SurveyResponse.objects.exists())

    def test_unknown_entry_is_not_found(self):
        with self.assertRaises(NotFound):
            self.processor.complete(999999, self.alice, self._payload())

    def test_unknown_session_is_not_found(self):
        with self.assertRaises(NotFound):
            self.processor.complete(self.entry.pk, self.alice, self._payload(session_id='missing'))

    def test_entry_must_be_in_call(self):
        QueueEntry.objects.filter(pk=self.entry.pk).update(status=QueueEntry.STATUS_ASSIGNED)

        with self.assertRaises(ValidationFailure):
            self.processor.complete(self.entry.pk, self.alice, self._payload())

    @override_settings(CATI_REVIEW_INTAKE='fieldwork.apps.cati_core.review.DatabaseReviewIntake')
    def test_default_intake_writes_review_queue_item(self):
        finalized = CompletionProcessor().complete(self.entry.pk, self.alice, self._payload())

        item = ReviewQueueItem.objects.get()
        self.assertEqual(str(item.response.response_id), finalized.response_id)
        self.assertEqual(item.interviewer_id, self.alice.pk)


class WriteWithVerificationTests(TestCase):
    def test_returns_after_matching_read(self):
        write = mock.Mock()

        result = write_with_verification(write, lambda: 2, 2)

        self.assertEqual(result, 2)
        write.assert_called_once_with()

    def test_retries_once_on_mismatch(self):
        write = mock.Mock()
        read = mock.Mock(side_effect=[1, 2])

        self.assertEqual(write_with_verification(write, read, 2), 2)
        self.assertEqual(write.call_count, 2)

    def test_raises_after_second_mismatch(self):
        write = mock.Mock()

        with self.assertRaises(PersistenceInconsistency):
            write_with_verification(write, lambda: 1, 2, label='set number')
        self.assertEqual(write.call_count, 2)


class IsAnsweredTests(TestCase):
    def test_empty_shapes_are_unanswered(self):
        self.assertFalse(is_answered({'response': ''}))
        self.assertFalse(is_answered({'response': []}))
        self.assertFalse(is_answered({'response': {}}))
        self.assertFalse(is_answered({'response': None}))
        self.assertFalse(is_answered({}))

    def test_values_are_answered(self):
        self.assertTrue(is_answered({'response': 'yes'}))
        self.assertTrue(is_answered({'response': ['a']}))
        self.assertTrue(is_answered({'response': {'phone': '1'}}))
        self.assertTrue(is_answered({'response': 0}))
