# test_requests/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import HealthCheckView, TestRequestViewSet, WorkflowDefinitionView

app_name = "test_requests"

router = DefaultRouter()
router.register(r"test-requests", TestRequestViewSet, basename="test-request")

urlpatterns = [
    path("health/", HealthCheckView.as_view(), name="health"),
    path("workflow/definition/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("", include(router.urls)),
]
