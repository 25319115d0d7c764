from django.test import TestCase, override_settings
from django.utils import timezone

from fieldwork.apps.cati_core.auto_rejection import (
    REASON_DUPLICATE_PHONE,
    REASON_DURATION,
    RejectionVerdict,
    apply_verdict,
    evaluate,
    normalize_contact_value,
)
from fieldwork.apps.cati_core.models import DuplicateContactRule, SurveyResponse

from .base import PHONE_QUESTION, CatiFixturesMixin


class DurationRuleTests(CatiFixturesMixin, TestCase):
    def setUp(self):
        self.manager = self.make_user('manager')
        self.alice = self.make_user('alice')
        self.survey = self.make_survey(self.manager)

    def test_short_interview_is_rejected(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1', total_time_spent=90)

        verdict = evaluate(response)

        self.assertEqual(verdict.reasons, [REASON_DURATION])
        self.assertIn('Interview Too Short', verdict.feedback)

    def test_long_interview_passes(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1', total_time_spent=300)

        self.assertIsNone(evaluate(response))

    def test_threshold_boundary_passes(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1', total_time_spent=180)

        self.assertIsNone(evaluate(response))

    def test_unmeasured_duration_is_not_judged(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1', total_time_spent=0)

        self.assertIsNone(evaluate(response))

    def test_survey_override_wins_over_global_threshold(self):
        self.survey.min_interview_seconds = 60
        self.survey.save(update_fields=['min_interview_seconds'])
        response = self.make_response(self.survey, self.alice, session_id='s-1', total_time_spent=90)

        self.assertIsNone(evaluate(response))

    @override_settings(CATI_MIN_INTERVIEW_SECONDS=600)
    def test_global_threshold_comes_from_settings(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1', total_time_spent=300)

        self.assertEqual(evaluate(response).reasons, [REASON_DURATION])


class DuplicateContactRuleTests(CatiFixturesMixin, TestCase):
    def setUp(self):
        self.manager = self.make_user('manager')
        self.alice = self.make_user('alice')
        self.survey = self.make_survey(self.manager)
        DuplicateContactRule.objects.create(survey=self.survey, selector_value=PHONE_QUESTION)

    def test_same_number_in_different_format_is_duplicate(self):
        first = self.make_response(self.survey, self.alice, session_id='s-1', contact='98765 43210')
        self.assertIsNone(evaluate(first))

        second = self.make_response(self.survey, self.alice, session_id='s-2', contact='9876543210')
        verdict = evaluate(second)

        self.assertEqual(verdict.reasons, [REASON_DUPLICATE_PHONE])
        self.assertEqual(verdict.feedback, 'Duplicate Phone Number')

        third = self.make_response(self.survey, self.alice, session_id='s-3', contact='9123456789')
        self.assertIsNone(evaluate(third))

    def test_rejected_siblings_still_count(self):
        self.make_response(
            self.survey,
            self.alice,
            session_id='s-1',
            contact='9876543210',
            status=SurveyResponse.STATUS_REJECTED,
        )
        second = self.make_response(self.survey, self.alice, session_id='s-2', contact='(98765)-43210')

        self.assertEqual(evaluate(second).reasons, [REASON_DUPLICATE_PHONE])

    def test_surveys_without_rule_are_not_checked(self):
        other = self.make_survey(self.manager, name='No Rule')
        self.make_response(other, self.alice, session_id='s-1', contact='9876543210')
        second = self.make_response(other, self.alice, session_id='s-2', contact='9876543210')

        self.assertIsNone(evaluate(second))

    def test_other_surveys_are_not_compared(self):
        other = self.make_survey(self.manager, name='Other')
        self.make_response(other, self.alice, session_id='s-1', contact='9876543210')
        response = self.make_response(self.survey, self.alice, session_id='s-2', contact='9876543210')

        self.assertIsNone(evaluate(response))

    def test_tag_selector_matches_tagged_answer(self):
        survey = self.make_survey(self.manager, name='Tagged')
        DuplicateContactRule.objects.create(
            survey=survey,
            selector_kind=DuplicateContactRule.SELECTOR_TAG,
            selector_value='contact_phone',
        )
        answers = [{'questionId': 'p', 'questionText': 'Your number', 'tags': ['contact_phone'], 'response': ['98765 43210']}]
        self.make_response(survey, self.alice, session_id='s-1', answers=answers)
        second = self.make_response(survey, self.alice, session_id='s-2', answers=answers)

        self.assertEqual(evaluate(second).reasons, [REASON_DUPLICATE_PHONE])

    def test_pattern_selector_matches_question_text(self):
        survey = self.make_survey(self.manager, name='Pattern')
        DuplicateContactRule.objects.create(
            survey=survey,
            selector_kind=DuplicateContactRule.SELECTOR_PATTERN,
            selector_value=r'mobile\s+number',
        )
        answers = [{'questionText': 'Share your Mobile Number', 'response': {'phone': '98765-43210'}}]
        self.make_response(survey, self.alice, session_id='s-1', answers=answers)
        second = self.make_response(survey, self.alice, session_id='s-2', answers=answers)

        self.assertEqual(evaluate(second).reasons, [REASON_DUPLICATE_PHONE])

    def test_both_rules_can_fire(self):
        self.make_response(self.survey, self.alice, session_id='s-1', contact='9876543210')
        second = self.make_response(
            self.survey, self.alice, session_id='s-2', contact='9876543210', total_time_spent=45
        )

        verdict = evaluate(second)

        self.assertEqual(verdict.reasons, [REASON_DURATION, REASON_DUPLICATE_PHONE])
        self.assertEqual(verdict.feedback, 'Interview Too Short; Duplicate Phone Number')


class NormalizeContactValueTests(TestCase):
    def test_normalizes_supported_shapes(self):
        self.assertEqual(normalize_contact_value(' 98765-43210 '), '9876543210')
        self.assertEqual(normalize_contact_value(['(98765) 43210', 'ignored']), '9876543210')
        self.assertEqual(normalize_contact_value({'value': '98765.43210'}), '9876543210')
        self.assertEqual(normalize_contact_value(9876543210), '9876543210')
        self.assertEqual(normalize_contact_value('ABC-12'), 'abc12')
        self.assertEqual(normalize_contact_value([]), '')
        self.assertEqual(normalize_contact_value(None), '')


class ApplyVerdictTests(CatiFixturesMixin, TestCase):
    def setUp(self):
        self.manager = self.make_user('manager')
        self.alice = self.make_user('alice')
        self.survey = self.make_survey(self.manager)

    def test_apply_marks_rejected_and_keeps_set_number(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1', set_number=2)

        applied = apply_verdict(response, RejectionVerdict(reasons=[REASON_DURATION]))

        self.assertTrue(applied)
        response.refresh_from_db()
        self.assertEqual(response.status, SurveyResponse.STATUS_REJECTED)
        self.assertTrue(response.auto_rejected)
        self.assertEqual(response.auto_rejection_reasons, [REASON_DURATION])
        self.assertEqual(response.feedback, 'Interview Too Short')
        self.assertIsNotNone(response.reviewed_at)
        self.assertIsNone(response.reviewer)
        self.assertEqual(response.set_number, 2)

    def test_apply_skips_human_reviewed_response(self):
        reviewer = self.make_user('reviewer')
        response = self.make_response(
            self.survey,
            self.alice,
            session_id='s-1',
            status=SurveyResponse.STATUS_APPROVED,
            reviewer=reviewer,
            reviewed_at=timezone.now(),
        )

        applied = apply_verdict(response, RejectionVerdict(reasons=[REASON_DURATION]))

        self.assertFalse(applied)
        response.refresh_from_db()
        self.assertEqual(response.status, SurveyResponse.STATUS_APPROVED)
        self.assertFalse(response.auto_rejected)

    def test_empty_verdict_is_a_no_op(self):
        response = self.make_response(self.survey, self.alice, session_id='s-1')

        self.assertFalse(apply_verdict(response, None))
        self.assertFalse(apply_verdict(response, RejectionVerdict()))
