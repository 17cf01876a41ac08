# backend/core/urls.py
from django.contrib import admin
from django.http import HttpResponse
from django.urls import path


def health(_request):
    return HttpResponse("ok", content_type="text/plain")


admin.site.site_header = "Dispute Resolution Admin"
admin.site.site_title = "Disputes"

urlpatterns = [
    path("admin/", admin.site.urls),
    path("healthz", health, name="health"),
]
