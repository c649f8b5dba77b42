from django.urls import path

from . import views

app_name = "notifications"

urlpatterns = [
    path("outbox/process/", views.process_outbox, name="outbox_process"),
    path("outbox/status/", views.outbox_status, name="outbox_status"),
    path("test/", views.send_test_email, name="test_email"),
]
