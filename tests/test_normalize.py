"""Unit tests for signal normalization."""

from datetime import UTC, datetime, timedelta, timezone

from leadsignals.ingest.normalize import (
    UNKNOWN_COMPANY,
    compose_detail,
    derive_company_domain,
    normalize_company_name,
    normalize_signal,
)
from leadsignals.models import SignalType


class TestNormalizeCompanyName:
    """Tests for normalize_company_name()."""

    def test_title_cases_shouting(self):
        """Should title-case an all-caps name."""
        assert normalize_company_name("SPARKLE CLEANING LTD") == "Sparkle Cleaning Ltd"

    def test_keeps_plc_upper(self):
        """Should keep legal suffixes like PLC upper-case."""
        assert normalize_company_name("NORTHERN BUILD PLC") == "Northern Build PLC"

    def test_title_cases_lowercase(self):
        """Should title-case an all-lowercase name."""
        assert normalize_company_name("acme services") == "Acme Services"

    def test_keeps_mixed_case(self):
        """Should leave mixed-case names alone."""
        assert normalize_company_name("McKinsey & Company") == "McKinsey & Company"

    def test_collapses_whitespace(self):
        """Should collapse runs of whitespace."""
        assert normalize_company_name("  Acme   Widgets  Ltd ") == "Acme Widgets Ltd"

    def test_missing_name(self):
        """Should fall back to the unknown-company placeholder."""
        assert normalize_company_name(None) == UNKNOWN_COMPANY
        assert normalize_company_name("   ") == UNKNOWN_COMPANY


class TestDeriveCompanyDomain:
    """Tests for derive_company_domain()."""

    def test_strips_www_and_path(self):
        """Should keep only the lowercased host without www."""
        assert derive_company_domain("https://www.Sparkle.co.uk/about") == "sparkle.co.uk"

    def test_accepts_bare_host(self):
        """Should accept a host with no scheme."""
        assert derive_company_domain("acme.com") == "acme.com"

    def test_portal_signal_url_is_not_a_company(self):
        """Should not treat a government portal as the company."""
        url = "https://www.contractsfinder.service.gov.uk/Notice/ocds-1"
        assert derive_company_domain(None, url) is None

    def test_falls_back_to_signal_url(self):
        """Should use the signal URL when no company URL is given."""
        assert derive_company_domain(None, "https://news.acme.com/press/1") == "news.acme.com"

    def test_garbage_returns_none(self):
        """Should return None rather than guess."""
        assert derive_company_domain("not a url") is None
        assert derive_company_domain("localhost") is None
        assert derive_company_domain("") is None


class TestComposeDetail:
    """Tests for compose_detail()."""

    def test_appends_buyer_and_value(self, make_raw):
        """Should append buyer and formatted value."""
        raw = make_raw(metadata={"buyer_name": "Leeds City Council", "value": 125000})
        assert compose_detail(raw) == "Cleaning of council offices | Buyer: Leeds City Council | Value: £125,000"

    def test_truncates_long_detail(self, make_raw):
        """Should truncate long detail text with an ellipsis."""
        raw = make_raw(detail="x" * 600)
        detail = compose_detail(raw)
        assert len(detail) == 503
        assert detail.endswith("...")

    def test_ignores_non_positive_value(self, make_raw):
        """Should skip a zero value."""
        raw = make_raw(metadata={"value": 0})
        assert compose_detail(raw) == "Cleaning of council offices"

    def test_includes_decision(self, make_raw):
        """Should append a planning decision."""
        raw = make_raw(detail="New warehouse", metadata={"decision": "Approved"})
        assert compose_detail(raw) == "New warehouse | Decision: Approved"

    def test_includes_salary_range(self, make_raw):
        """Should append a salary range, or a single figure when only one is known."""
        raw = make_raw(detail="Python developer", metadata={"salary_min": 55000.0, "salary_max": 70000})
        assert compose_detail(raw) == "Python developer | Salary: £55,000 - £70,000"

        only_max = make_raw(detail="Python developer", metadata={"salary_min": None, "salary_max": 70000})
        assert compose_detail(only_max) == "Python developer | Salary: £70,000"


class TestNormalizeSignal:
    """Tests for normalize_signal()."""

    def test_deterministic(self, make_raw):
        """Should give identical output for identical input."""
        raw = make_raw(company_name="SPARKLE CLEANING LTD", company_url="https://sparkle.co.uk")
        assert normalize_signal(raw, "contracts_finder") == normalize_signal(raw, "contracts_finder")

    def test_maps_fields(self, make_raw):
        """Should map raw fields onto the canonical shape."""
        raw = make_raw(company_name="SPARKLE CLEANING LTD", company_url="https://www.sparkle.co.uk")
        signal = normalize_signal(raw, "contracts_finder")

        assert signal.company_name == "Sparkle Cleaning Ltd"
        assert signal.company_domain == "sparkle.co.uk"
        assert signal.signal_type == "contract_award"
        assert signal.signal_title == "Won contract: Office cleaning"
        assert signal.signal_url == raw.url
        assert signal.location == "Leeds"
        assert signal.source_type == "contracts_finder"

    def test_signal_type_from_metadata(self, make_raw):
        """Should prefer the signal type the connector reported."""
        raw = make_raw(source_type="planning_data", metadata={"signal_type": SignalType.PLANNING_APPROVED})
        assert normalize_signal(raw, "planning_data").signal_type == "planning_approved"

    def test_default_signal_type_for_source(self, make_raw):
        """Should fall back to the source's default signal type."""
        raw = make_raw(source_type="planning_data")
        assert normalize_signal(raw, "planning_data").signal_type == "planning_submitted"

    def test_default_signal_types_for_new_sources(self, make_raw):
        """Should label job postings and officer appointments by source."""
        assert normalize_signal(make_raw(source_type="adzuna"), "adzuna").signal_type == "job_posting"
        assert normalize_signal(make_raw(), "companies_house").signal_type == "leadership_change"

    def test_detected_at_is_utc(self, make_raw):
        """Should store detection times in UTC."""
        naive = make_raw(detected_at=datetime(2024, 3, 2, 9, 30))
        assert normalize_signal(naive, "contracts_finder").detected_at == datetime(2024, 3, 2, 9, 30, tzinfo=UTC)

        offset = make_raw(detected_at=datetime(2024, 3, 2, 10, 30, tzinfo=timezone(timedelta(hours=1))))
        assert normalize_signal(offset, "contracts_finder").detected_at.tzinfo == UTC

    def test_blank_url_becomes_none(self, make_raw):
        """Should treat a blank URL as missing."""
        signal = normalize_signal(make_raw(url="   "), "contracts_finder")
        assert signal.signal_url is None
        assert signal.identity_key.startswith("dom:contracts_finder:")

    def test_untitled_signal(self, make_raw):
        """Should title a signal that has none."""
        assert normalize_signal(make_raw(title=None), "contracts_finder").signal_title == "Untitled signal"
