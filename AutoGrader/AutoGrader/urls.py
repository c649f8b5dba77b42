from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/grade/", include("grades.urls")),
    path("api/email/", include("notifications.urls")),
]
