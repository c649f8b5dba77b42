# notifications/admin.py
from django.contrib import admin

from .models import OutboxJob
from .outbox import requeue_processing_jobs


@admin.register(OutboxJob)
class OutboxJobAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "to", "status", "attempts", "next_attempt_at", "sent_at", "cancel_reason", "created_at")
    list_filter = ("status", "type", "cancel_reason")
    search_fields = ("to", "signature", "student__name", "student__github_username")
    readonly_fields = ("signature", "created_at", "updated_at")
    raw_id_fields = ("student", "submission")
    ordering = ("-created_at",)
    actions = ("requeue_stuck",)

    @admin.action(description="Requeue selected jobs stuck in processing")
    def requeue_stuck(self, request, queryset):
        count = requeue_processing_jobs(queryset)
        self.message_user(request, f"Requeued {count} job(s).")
