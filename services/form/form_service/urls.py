"""URL configuration for the form service."""
from django.urls import include, path

from forms.views import health

urlpatterns = [
    path("api/healthz/", health, name="form-health"),
    path("api/", include("forms.urls")),
]
