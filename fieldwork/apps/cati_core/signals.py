from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db import OperationalError, ProgrammingError
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import InterviewerProfile

User = get_user_model()


@receiver(post_save, sender=User)
def create_interviewer_profile(sender, instance: User, created: bool, **kwargs):
    if created:
        try:
            InterviewerProfile.objects.get_or_create(user=instance)
        except (ProgrammingError, OperationalError):
            # Tables are missing while migrations run on a fresh database;
            # ensure_interviewer_profile creates the row on first use instead.
            return
