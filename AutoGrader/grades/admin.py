# grades/admin.py
from django.contrib import admin

from .models import Submission


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    list_display = ("student", "week", "session", "status", "score", "max_score", "submitted_at", "last_emailed_at")
    list_filter = ("status", "week", "session")
    search_fields = ("student__name", "student__email", "student__github_username")
    readonly_fields = ("results", "last_email_signature", "last_emailed_at", "last_email_error", "created_at", "updated_at")
    raw_id_fields = ("student",)
