import pytest


@pytest.fixture(autouse=True)
def _plain_http_for_tests(settings):
    # SecurityMiddleware would otherwise redirect to https://testserver/...
    settings.SECURE_SSL_REDIRECT = False

    # secure-only cookies never reach the test client over plain http
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0


@pytest.fixture(autouse=True)
def _quiet_notifications(settings):
    # individual tests opt in to email delivery
    settings.WORKFLOW_EMAIL_NOTIFICATIONS = False
    settings.WORKFLOW_NOTIFY_EMAILS = []
