from django.db import models
from django.utils import timezone


class Student(models.Model):
    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True)
    github_username = models.CharField(max_length=100, unique=True)
    enrolled_at = models.DateTimeField(default=timezone.now)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def save(self, *args, **kwargs):
        self.name = (self.name or "").strip()
        self.email = (self.email or "").strip().lower()
        self.github_username = (self.github_username or "").strip()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.name} ({self.github_username})"
