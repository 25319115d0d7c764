from __future__ import annotations

from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from .models import (
    CallAttempt,
    CatiSurvey,
    DuplicateContactRule,
    InterviewerProfile,
    QueueEntry,
    ReviewQueueItem,
    SetRecord,
    SurveyInterviewer,
    SurveyResponse,
)
from .queueing import initialize_respondent_queue, remove_duplicate_entries


class SurveyInterviewerInline(admin.TabularInline):
    model = SurveyInterviewer
    extra = 0


class DuplicateContactRuleInline(admin.TabularInline):
    model = DuplicateContactRule
    extra = 0


@admin.register(CatiSurvey)
class CatiSurveyAdmin(admin.ModelAdmin):
    list_display = ('name', 'status', 'owner', 'location_state', 'min_interview_seconds', 'created_at')
    list_filter = ('status',)
    search_fields = ('name', 'owner__username')
    inlines = (SurveyInterviewerInline, DuplicateContactRuleInline)
    actions = ('seed_queue', 'dedupe_queue')

    @admin.action(description=_('Seed respondent queue from contacts'))
    def seed_queue(self, request, queryset):
        for survey in queryset:
            result = initialize_respondent_queue(survey)
            self.message_user(
                request,
                _('%(survey)s: %(created)s created, %(dupes)s duplicates, %(invalid)s invalid.')
                % {
                    'survey': survey.name,
                    'created': result.created,
                    'dupes': result.skipped_duplicates,
                    'invalid': result.skipped_invalid,
                },
                messages.SUCCESS,
            )

    @admin.action(description=_('Remove duplicate pending queue entries'))
    def dedupe_queue(self, request, queryset):
        removed = sum(remove_duplicate_entries(survey) for survey in queryset)
        self.message_user(request, _('%s duplicate entries removed.') % removed, messages.SUCCESS)


class CallAttemptInline(admin.TabularInline):
    model = CallAttempt
    extra = 0
    can_delete = False
    readonly_fields = (
        'attempt_number',
        'attempted_at',
        'attempted_by',
        'outcome',
        'reason',
        'notes',
        'call_id',
        'scheduled_for',
    )


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = (
        'survey',
        'respondent_name',
        'respondent_phone',
        'status',
        'priority',
        'interviewer',
        'attempt_count',
        'created_at',
    )
    list_filter = ('survey', 'status', 'is_deleted')
    search_fields = ('respondent_name', 'respondent_phone', 'normalized_phone')
    readonly_fields = (
        'normalized_phone',
        'attempt_count',
        'last_attempted_at',
        'claimed_at',
        'completed_at',
        'imported_at',
        'response',
        'call_record',
    )
    inlines = (CallAttemptInline,)

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SurveyResponse)
class SurveyResponseAdmin(admin.ModelAdmin):
    list_display = ('response_id', 'survey', 'interviewer', 'status', 'auto_rejected', 'set_number', 'created_at')
    list_filter = ('survey', 'status', 'auto_rejected')
    search_fields = ('response_id', 'session_id', 'call_id')
    readonly_fields = ('response_id', 'session_id', 'created_at', 'updated_at', 'review_enqueued_at')


@admin.register(SetRecord)
class SetRecordAdmin(admin.ModelAdmin):
    list_display = ('response', 'survey', 'set_number', 'updated_at')
    list_filter = ('survey', 'set_number')


@admin.register(ReviewQueueItem)
class ReviewQueueItemAdmin(admin.ModelAdmin):
    list_display = ('response', 'survey', 'interviewer', 'status', 'batch_date')
    list_filter = ('status', 'batch_date', 'survey')


@admin.register(InterviewerProfile)
class InterviewerProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'display_name', 'phone')
    search_fields = ('user__username', 'display_name', 'phone')
