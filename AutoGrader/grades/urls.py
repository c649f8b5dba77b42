from django.urls import path

from . import views

app_name = "grades"

urlpatterns = [
    path("", views.grade, name="grade"),
    path("batch/", views.grade_batch_view, name="grade_batch"),
    path("preview/", views.preview, name="preview"),
]
