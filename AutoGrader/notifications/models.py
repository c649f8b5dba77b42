from django.db import models
from django.utils import timezone


class OutboxJob(models.Model):
    TYPE_GRADE_REPORT = "grade-report"
    TYPE_CHOICES = [(TYPE_GRADE_REPORT, "Grade report")]

    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_SENT = "sent"
    STATUS_CANCELED = "canceled"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_SENT, "Sent"),
        (STATUS_CANCELED, "Canceled"),
    ]

    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_GRADE_REPORT)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    attempts = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(default=timezone.now)
    processing_started_at = models.DateTimeField(blank=True, null=True)
    sent_at = models.DateTimeField(blank=True, null=True)
    last_error = models.TextField(blank=True, null=True)
    cancel_reason = models.CharField(max_length=64, blank=True, null=True)

    # null once the row is gone; the job is then canceled as missing-student-or-submission
    student = models.ForeignKey(
        "students.Student", related_name="outbox_jobs", on_delete=models.SET_NULL, null=True, blank=True
    )
    submission = models.ForeignKey(
        "grades.Submission", related_name="outbox_jobs", on_delete=models.SET_NULL, null=True, blank=True
    )
    to = models.EmailField()
    signature = models.CharField(max_length=64)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["submission", "signature"], name="outbox_unique_submission_signature"),
        ]
        indexes = [
            models.Index(fields=["status", "next_attempt_at", "created_at"], name="outbox_due_idx"),
        ]

    def __str__(self):
        return f"{self.type} -> {self.to} [{self.status}]"
