from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from assignments.autograder import percentage
from students.models import Student


class Submission(models.Model):
    STATUS_PENDING = "pending"
    STATUS_GRADING = "grading"
    STATUS_COMPLETED = "completed"
    STATUS_ERROR = "error"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_GRADING, "Grading"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_ERROR, "Error"),
    ]

    student = models.ForeignKey(Student, related_name="submissions", on_delete=models.CASCADE)
    week = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    session = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(24)])
    submitted_at = models.DateTimeField(default=timezone.now)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    score = models.PositiveIntegerField(default=0)
    max_score = models.PositiveIntegerField(default=0)
    results = models.JSONField(default=list, blank=True)
    error_message = models.TextField(blank=True)

    # last grade report that actually went out
    last_email_signature = models.CharField(max_length=64, blank=True)
    last_emailed_at = models.DateTimeField(blank=True, null=True)
    last_email_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = (("student", "week", "session"),)
        ordering = ["-submitted_at"]

    @property
    def percentage(self) -> int:
        return percentage(self.score, self.max_score)

    def __str__(self):
        return f"{self.student} - Week {self.week} Session {self.session}: {self.score}/{self.max_score}"
