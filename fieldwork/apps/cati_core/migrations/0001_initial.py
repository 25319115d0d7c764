# Generated manually for the CATI module
import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import fieldwork.apps.cati_core.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='InterviewerProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('display_name', models.CharField(blank=True, max_length=128)),
                ('phone', models.CharField(blank=True, max_length=32)),
                (
                    'user',
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='cati_profile',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'verbose_name': 'CATI Interviewer Profile',
                'verbose_name_plural': 'CATI Interviewer Profiles',
            },
        ),
        migrations.CreateModel(
            name='CatiSurvey',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=256)),
                ('description', models.TextField(blank=True)),
                (
                    'status',
                    models.CharField(
                        choices=[('draft', 'Draft'), ('active', 'Active'), ('paused', 'Paused'), ('closed', 'Closed')],
                        default='draft',
                        max_length=16,
                    ),
                ),
                ('questionnaire', models.JSONField(blank=True, default=dict)),
                ('respondent_contacts', models.JSONField(blank=True, default=list)),
                ('location_state', models.CharField(blank=True, max_length=128)),
                ('min_interview_seconds', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'owner',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='owned_cati_surveys',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'ordering': ('name',),
                'indexes': [models.Index(fields=['status'], name='cati_survey_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='SurveyInterviewer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'status',
                    models.CharField(
                        choices=[('assigned', 'Assigned'), ('unassigned', 'Unassigned')],
                        default='assigned',
                        max_length=16,
                    ),
                ),
                ('assigned_area_codes', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'interviewer',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='cati_assignments',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='interviewers',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'unique_together': {('survey', 'interviewer')},
                'indexes': [models.Index(fields=['survey', 'status'], name='cati_interviewer_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='QueueEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('respondent_name', models.CharField(blank=True, max_length=256)),
                ('respondent_country_code', models.CharField(blank=True, max_length=8)),
                ('respondent_phone', models.CharField(max_length=32)),
                ('respondent_email', models.CharField(blank=True, max_length=254)),
                ('respondent_address', models.TextField(blank=True)),
                ('respondent_city', models.CharField(blank=True, max_length=128)),
                ('respondent_area_code', models.CharField(blank=True, max_length=64)),
                ('respondent_precinct_code', models.CharField(blank=True, max_length=64)),
                ('respondent_station_code', models.CharField(blank=True, max_length=64)),
                ('normalized_phone', models.CharField(editable=False, max_length=32)),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('pending', 'Pending'),
                            ('assigned', 'Assigned'),
                            ('calling', 'Calling'),
                            ('interview_success', 'Interview Success'),
                            ('call_failed', 'Call Failed'),
                            ('busy', 'Busy'),
                            ('no_answer', 'No Answer'),
                            ('switched_off', 'Switched Off'),
                            ('not_reachable', 'Not Reachable'),
                            ('does_not_exist', 'Does Not Exist'),
                            ('rejected', 'Rejected'),
                            ('not_interested', 'Not Interested'),
                            ('call_later', 'Call Later'),
                        ],
                        default='pending',
                        max_length=32,
                    ),
                ),
                ('priority', models.IntegerField(default=0)),
                ('claimed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('imported_at', models.DateTimeField(auto_now_add=True)),
                ('attempt_count', models.PositiveIntegerField(default=0)),
                ('last_attempted_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('abandonment_reason', models.CharField(blank=True, max_length=32)),
                ('abandonment_notes', models.TextField(blank=True)),
                ('call_later_date', models.DateTimeField(blank=True, null=True)),
                ('is_deleted', models.BooleanField(default=False)),
                (
                    'interviewer',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='cati_queue_entries',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='queue_entries',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'verbose_name_plural': 'Queue entries',
                'indexes': [
                    models.Index(
                        fields=['survey', 'status', 'priority', 'created_at'],
                        name='cati_queue_service_idx',
                    ),
                    models.Index(fields=['survey', 'interviewer', 'status'], name='cati_queue_owner_idx'),
                    models.Index(fields=['normalized_phone'], name='cati_queue_phone_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('is_deleted', False)),
                        fields=('survey', 'normalized_phone'),
                        name='cati_unique_live_phone_per_survey',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='CallAttempt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('attempt_number', models.PositiveIntegerField()),
                ('attempted_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('outcome', models.CharField(max_length=32)),
                ('reason', models.TextField(blank=True)),
                ('notes', models.TextField(blank=True)),
                ('call_id', models.CharField(blank=True, max_length=128)),
                ('scheduled_for', models.DateTimeField(blank=True, null=True)),
                (
                    'attempted_by',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='+',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'queue_entry',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='call_attempts',
                        to='cati_core.queueentry',
                    ),
                ),
            ],
            options={
                'ordering': ('attempt_number', 'id'),
                'indexes': [models.Index(fields=['queue_entry', 'attempt_number'], name='cati_attempt_entry_idx')],
            },
        ),
        migrations.CreateModel(
            name='CallRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('call_id', models.CharField(db_index=True, max_length=128)),
                ('from_number', models.CharField(max_length=32)),
                ('to_number', models.CharField(max_length=32)),
                ('from_type', models.CharField(default='Number', max_length=16)),
                ('to_type', models.CharField(default='Number', max_length=16)),
                (
                    'call_status',
                    models.CharField(
                        choices=[
                            ('ringing', 'Ringing'),
                            ('answered', 'Answered'),
                            ('completed', 'Completed'),
                            ('failed', 'Failed'),
                        ],
                        default='ringing',
                        max_length=16,
                    ),
                ),
                ('webhook_received', models.BooleanField(default=False)),
                ('provider_response', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'created_by',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='+',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'queue_entry',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='call_records',
                        to='cati_core.queueentry',
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='call_records',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'indexes': [models.Index(fields=['queue_entry', 'created_at'], name='cati_call_entry_idx')],
            },
        ),
        migrations.CreateModel(
            name='InterviewSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'session_id',
                    models.CharField(
                        default=fieldwork.apps.cati_core.models.new_session_id,
                        max_length=64,
                        unique=True,
                    ),
                ),
                ('interview_mode', models.CharField(default='cati', max_length=16)),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('active', 'Active'),
                            ('paused', 'Paused'),
                            ('abandoned', 'Abandoned'),
                            ('completed', 'Completed'),
                        ],
                        default='active',
                        max_length=16,
                    ),
                ),
                ('start_time', models.DateTimeField(default=django.utils.timezone.now)),
                ('last_activity_time', models.DateTimeField(default=django.utils.timezone.now)),
                ('total_time_spent', models.PositiveIntegerField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                (
                    'interviewer',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='cati_sessions',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'queue_entry',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='sessions',
                        to='cati_core.queueentry',
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='sessions',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name='SurveyResponse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('response_id', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('session_id', models.CharField(max_length=64, unique=True)),
                ('interview_mode', models.CharField(default='cati', max_length=16)),
                ('call_id', models.CharField(blank=True, max_length=128)),
                ('set_number', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('answers', models.JSONField(blank=True, default=list)),
                ('selected_area_code', models.CharField(blank=True, max_length=64)),
                ('selected_station', models.JSONField(blank=True, default=dict)),
                ('legacy_interviewer_id', models.CharField(blank=True, max_length=64)),
                ('start_time', models.DateTimeField()),
                ('end_time', models.DateTimeField()),
                ('total_time_spent', models.PositiveIntegerField(default=0)),
                ('total_questions', models.PositiveIntegerField(default=0)),
                ('answered_questions', models.PositiveIntegerField(default=0)),
                ('skipped_questions', models.IntegerField(default=0)),
                ('completion_percentage', models.PositiveSmallIntegerField(default=0)),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('Pending_Approval', 'Pending Approval'),
                            ('Approved', 'Approved'),
                            ('Rejected', 'Rejected'),
                        ],
                        default='Pending_Approval',
                        max_length=32,
                    ),
                ),
                ('reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('feedback', models.TextField(blank=True)),
                ('auto_rejected', models.BooleanField(default=False)),
                ('auto_rejection_reasons', models.JSONField(blank=True, default=list)),
                ('review_enqueued_at', models.DateTimeField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'interviewer',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='cati_responses',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'queue_entry',
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='survey_response',
                        to='cati_core.queueentry',
                    ),
                ),
                (
                    'reviewer',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='+',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='responses',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'indexes': [
                    models.Index(fields=['survey', 'status'], name='cati_response_status_idx'),
                    models.Index(fields=['interviewer', 'created_at'], name='cati_response_owner_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SetRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('set_number', models.PositiveSmallIntegerField()),
                ('interview_mode', models.CharField(default='cati', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'response',
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='set_record',
                        to='cati_core.surveyresponse',
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='set_records',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'indexes': [models.Index(fields=['survey', 'set_number'], name='cati_set_survey_idx')],
            },
        ),
        migrations.CreateModel(
            name='DuplicateContactRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'selector_kind',
                    models.CharField(
                        choices=[
                            ('text', 'Exact question text'),
                            ('tag', 'Question tag'),
                            ('pattern', 'Question text pattern'),
                        ],
                        default='text',
                        max_length=16,
                    ),
                ),
                ('selector_value', models.TextField()),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='duplicate_contact_rules',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(
                        fields=('survey', 'selector_kind', 'selector_value'),
                        name='cati_unique_contact_rule',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReviewQueueItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'status',
                    models.CharField(
                        choices=[('queued', 'Queued'), ('in_review', 'In Review'), ('done', 'Done')],
                        default='queued',
                        max_length=16,
                    ),
                ),
                ('batch_date', models.DateField(default=django.utils.timezone.localdate)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'interviewer',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='+',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'response',
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='review_item',
                        to='cati_core.surveyresponse',
                    ),
                ),
                (
                    'survey',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='review_items',
                        to='cati_core.catisurvey',
                    ),
                ),
            ],
            options={
                'ordering': ('created_at',),
                'indexes': [
                    models.Index(fields=['survey', 'batch_date', 'status'], name='cati_review_batch_idx'),
                ],
            },
        ),
        migrations.AddField(
            model_name='queueentry',
            name='call_record',
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name='+',
                to='cati_core.callrecord',
            ),
        ),
        migrations.AddField(
            model_name='queueentry',
            name='response',
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name='+',
                to='cati_core.surveyresponse',
            ),
        ),
    ]
