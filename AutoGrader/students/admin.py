# students/admin.py
from django.contrib import admin
from .models import Student


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "github_username", "is_active", "enrolled_at")
    list_filter = ("is_active",)
    search_fields = ("name", "email", "github_username")
