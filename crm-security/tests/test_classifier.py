"""
Tests for the security event classifier.
"""

import pytest

from crm_security.audit import ClassificationRule, SecurityEventClassifier


@pytest.fixture
def classifier():
    return SecurityEventClassifier()


class TestEventTypes:
    """Tests for rule-table classification."""

    @pytest.mark.parametrize("method,path,expected", [
        ("POST", "/api/auth/login", "USER_LOGIN"),
        ("POST", "/api/auth/logout", "USER_LOGOUT"),
        ("POST", "/api/auth/change-password", "PASSWORD_CHANGE"),
        ("POST", "/api/auth/reset-password", "PASSWORD_RESET"),
        ("POST", "/api/auth/mfa/verify", "MFA_OPERATION"),
        ("PUT", "/api/admin/users/12", "USER_UPDATE"),
        ("DELETE", "/api/admin/users/12", "USER_DELETE"),
        ("POST", "/api/admin/users", "USER_CREATE"),
        ("GET", "/api/admin/users", "ADMIN_ACTION"),
        ("POST", "/api/properties", "PROPERTY_CREATE"),
        ("PATCH", "/api/properties/7", "PROPERTY_UPDATE"),
        ("DELETE", "/api/properties/7", "PROPERTY_DELETE"),
        ("POST", "/api/deals", "DEAL_CREATE"),
        ("PUT", "/api/deals/3", "DEAL_UPDATE"),
        ("DELETE", "/api/deals/3", "DEAL_DELETE"),
        ("GET", "/api/admin/settings", "ADMIN_ACTION"),
        ("GET", "/api/properties", "API_REQUEST"),
        ("GET", "/api/contacts", "API_REQUEST"),
    ])
    def test_rule_table(self, classifier, method, path, expected):
        assert classifier.event_type_for(method, path) == expected

    def test_versioned_mount(self, classifier):
        """The /api/v1 mount is stripped like /api."""
        assert classifier.event_type_for("POST", "/api/v1/deals") == "DEAL_CREATE"

    def test_segment_boundary(self, classifier):
        """Patterns match whole path segments only."""
        assert classifier.event_type_for("POST", "/api/dealsheet") == "API_REQUEST"
        assert classifier.event_type_for("GET", "/api/administrators") == "API_REQUEST"

    def test_query_and_trailing_slash_ignored(self, classifier):
        assert classifier.event_type_for("POST", "/api/auth/login/?next=/") == "USER_LOGIN"

    def test_first_match_wins(self):
        rules = [
            ClassificationRule("reports", "REPORT_EXPORT", frozenset({"POST"})),
            ClassificationRule("reports", "REPORT_ANY"),
        ]
        classifier = SecurityEventClassifier(rules=rules)

        assert classifier.event_type_for("POST", "/api/reports") == "REPORT_EXPORT"
        assert classifier.event_type_for("GET", "/api/reports") == "REPORT_ANY"


class TestSeverity:
    """Tests for severity derivation."""

    def test_critical_events_warn_regardless_of_status(self, classifier):
        assert classifier.severity_for("PASSWORD_CHANGE", 200) == "warn"
        assert classifier.severity_for("USER_DELETE", 500) == "warn"

    def test_status_based(self, classifier):
        assert classifier.severity_for("API_REQUEST", 502) == "error"
        assert classifier.severity_for("API_REQUEST", 401) == "warn"
        assert classifier.severity_for("API_REQUEST", 201) == "info"
        assert classifier.severity_for("API_REQUEST", None) == "info"

    def test_classify(self, classifier):
        assert classifier.classify("DELETE", "/api/admin/users/4", 204) == ("USER_DELETE", "warn")
        assert classifier.classify("POST", "/api/deals", 500) == ("DEAL_CREATE", "error")


class TestShouldAudit:
    """Tests for audit exclusions."""

    @pytest.mark.parametrize("path", [
        "/health",
        "/health/ready",
        "/uploads/photo.jpg",
        "/api/auth/refresh",
        "/api/dashboard/stats",
        "/favicon.ico",
    ])
    def test_excluded(self, classifier, path):
        assert classifier.should_audit(path) is False

    def test_included(self, classifier):
        assert classifier.should_audit("/api/deals") is True
        assert classifier.should_audit("/api/auth/login") is True
