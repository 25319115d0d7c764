from unittest import mock

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from fieldwork.apps.cati_core.models import QueueEntry, SetRecord, SurveyResponse
from fieldwork.apps.cati_core.telephony import CallInitiationResult

from .base import CatiFixturesMixin

ADAPTER_PATH = 'fieldwork.apps.cati_core.dialer.get_telephony_adapter'
INTAKE_PATH = 'fieldwork.apps.cati_core.completion.get_review_intake'


class CatiInterviewAPITests(CatiFixturesMixin, APITestCase):
    def setUp(self):
        self.manager = self.make_user('manager', is_staff=True)
        self.interviewer = self.make_user('interviewer', phone='+91 90000 00001')
        self.survey = self.make_survey(
            self.manager,
            respondent_contacts=[
                {'name': 'Asha', 'phone': '98000 00001', 'ac': '151', 'pc': '24'},
                {'name': 'Ravi', 'phone': '98000 00002', 'ac': '152', 'pc': '25'},
            ],
        )
        self.assign(self.survey, self.interviewer)
        self.adapter = mock.Mock()
        self.adapter.initiate_call.return_value = CallInitiationResult(success=True, call_id='CALL-9')
        adapter_patcher = mock.patch(ADAPTER_PATH, return_value=self.adapter)
        adapter_patcher.start()
        self.addCleanup(adapter_patcher.stop)
        intake_patcher = mock.patch(INTAKE_PATH, return_value=mock.Mock())
        intake_patcher.start()
        self.addCleanup(intake_patcher.stop)
        self.client.force_authenticate(self.interviewer)

    def _start(self):
        url = reverse('cati-survey-start', args=[self.survey.id])
        return self.client.post(url, {}, format='json')

    def test_start_call_and_complete_interview(self):
        start = self._start()
        self.assertEqual(start.status_code, status.HTTP_200_OK)
        self.assertTrue(start.data['has_pending_respondents'])
        self.assertEqual(start.data['respondent']['phone'], '98000 00001')
        self.assertEqual(start.data['assigned_area_codes'], [])
        self.assertFalse(start.data['requires_area_selection'])
        queue_id = start.data['queue_id']
        session_id = start.data['session_id']

        call = self.client.post(reverse('cati-queue-make-call', args=[queue_id]), {}, format='json')
        self.assertEqual(call.status_code, status.HTTP_200_OK)
        self.assertEqual(call.data['call_id'], 'CALL-9')
        self.assertEqual(call.data['queue']['status'], QueueEntry.STATUS_CALLING)

        complete_url = reverse('cati-queue-complete', args=[queue_id])
        payload = {
            'session_id': session_id,
            'answers': [{'questionId': 'q1', 'questionText': 'Age?', 'response': '41'}],
            'total_time_spent': 95,
            'set_number': 2,
        }
        complete = self.client.post(complete_url, payload, format='json')
        self.assertEqual(complete.status_code, status.HTTP_200_OK)
        self.assertEqual(complete.data['status'], 'Pending_Approval')

        retry = self.client.post(complete_url, payload, format='json')
        self.assertEqual(retry.status_code, status.HTTP_200_OK)
        self.assertEqual(retry.data['response_id'], complete.data['response_id'])

        self.assertEqual(SurveyResponse.objects.count(), 1)
        response = SurveyResponse.objects.get()
        self.assertEqual(response.status, SurveyResponse.STATUS_REJECTED)
        self.assertEqual(response.set_number, 2)
        self.assertEqual(SetRecord.objects.get(response=response).set_number, 2)
        self.assertEqual(response.selected_area_code, '151')
        entry = QueueEntry.objects.get(pk=queue_id)
        self.assertEqual(entry.status, QueueEntry.STATUS_INTERVIEW_SUCCESS)

        next_start = self._start()
        self.assertEqual(next_start.data['respondent']['phone'], '98000 00002')

    def test_empty_queue_is_informational(self):
        self.survey.respondent_contacts = []
        self.survey.save(update_fields=['respondent_contacts'])

        response = self._start()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['has_pending_respondents'])
        self.assertEqual(response.data['kind'], 'no_eligible_respondent')

    def test_unknown_survey_is_not_found(self):
        response = self.client.post(reverse('cati-survey-start', args=[999999]), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_failed_call_returns_bad_gateway_and_requeues(self):
        self.adapter.initiate_call.return_value = CallInitiationResult(
            success=False, message='Number busy on provider side', error_code='486'
        )
        queue_id = self._start().data['queue_id']

        response = self.client.post(reverse('cati-queue-make-call', args=[queue_id]), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data['kind'], 'transport_failure')
        self.assertEqual(response.data['detail'], 'Number busy on provider side')
        self.assertEqual(response.data['queue']['status'], QueueEntry.STATUS_PENDING)
        self.assertIsNone(response.data['queue']['interviewer'])

        abandon = self.client.post(
            reverse('cati-queue-abandon', args=[queue_id]),
            {'reason': 'not_reachable', 'notes': 'Provider rejected'},
            format='json',
        )
        self.assertEqual(abandon.status_code, status.HTTP_200_OK)
        self.assertEqual(abandon.data['status'], QueueEntry.STATUS_NOT_REACHABLE)

    def test_abandon_call_later(self):
        queue_id = self._start().data['queue_id']
        self.client.post(reverse('cati-queue-make-call', args=[queue_id]), {}, format='json')

        response = self.client.post(
            reverse('cati-queue-abandon', args=[queue_id]),
            {'reason': 'call_later', 'call_later_date': '2030-01-15T10:00:00Z'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], QueueEntry.STATUS_PENDING)
        self.assertEqual(response.data['priority'], QueueEntry.PRIORITY_CALL_LATER)
        self.assertEqual(response.data['call_attempts'][-1]['outcome'], QueueEntry.STATUS_CALL_LATER)

    def test_other_interviewer_cannot_act_on_entry(self):
        queue_id = self._start().data['queue_id']
        intruder = self.make_user('intruder', phone='9000000009')
        self.client.force_authenticate(intruder)

        call = self.client.post(reverse('cati-queue-make-call', args=[queue_id]), {}, format='json')
        abandon = self.client.post(reverse('cati-queue-abandon', args=[queue_id]), {'reason': 'busy'}, format='json')

        self.assertEqual(call.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(abandon.status_code, status.HTTP_403_FORBIDDEN)
        self.adapter.initiate_call.assert_not_called()

    def test_complete_requires_session_id(self):
        queue_id = self._start().data['queue_id']

        response = self.client.post(reverse('cati-queue-complete', args=[queue_id]), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('session_id', response.data)

    def test_queue_listing_is_scoped_to_interviewer(self):
        self._start()
        url = reverse('cati-queue-list')

        own = self.client.get(url, {'survey': self.survey.id})
        self.assertEqual(own.status_code, status.HTTP_200_OK)
        self.assertEqual(own.data['count'], 1)

        self.client.force_authenticate(self.manager)
        everything = self.client.get(url, {'survey': self.survey.id})
        self.assertEqual(everything.data['count'], 2)

    def test_responses_are_scoped_to_interviewer(self):
        other = self.make_user('other')
        self.make_response(self.survey, other, session_id='foreign')
        self.make_response(self.survey, self.interviewer, session_id='mine')

        listing = self.client.get(reverse('cati-responses-list'))

        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual([row['session_id'] for row in listing.data['results']], ['mine'])
        self.assertIsNone(listing.data['results'][0]['set_record'])

    def test_requires_authentication(self):
        self.client.force_authenticate(None)

        response = self._start()

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
