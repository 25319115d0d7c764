from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import QueueEntryViewSet, SurveyResponseViewSet, SurveyStartView

router = DefaultRouter()
router.register('queue', QueueEntryViewSet, basename='cati-queue')
router.register('responses', SurveyResponseViewSet, basename='cati-responses')

urlpatterns = [
    *router.urls,
    path('surveys/<int:pk>/start/', SurveyStartView.as_view(), name='cati-survey-start'),
]
