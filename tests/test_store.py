"""
Tests for the SQLAlchemy domain store.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from scoring.models import DomainAnalysis, DomainStatus
from store import DomainNotFoundError, DomainStore, StoreError, retry_operation


def analysis(domain, status=DomainStatus.AVAILABLE, **fields):
    fields.setdefault("last_checked", datetime(2024, 6, 1, tzinfo=timezone.utc))
    return DomainAnalysis(domain=domain, status=status, **fields)


class TestAddAndGet:
    """Test adding and reading domains."""

    def test_add_domain(self, temp_store):
        assert temp_store.add_domain("example.com") is True

        row = temp_store.get_domain("example.com")
        assert row["domain"] == "example.com"
        assert row["status"] == "pending"
        assert row["traffic_score"] is None
        assert row["created_at"] is not None

    def test_duplicate_is_reported_not_raised(self, temp_store):
        temp_store.add_domain("example.com")

        assert temp_store.add_domain("example.com") is False

    def test_exists(self, temp_store):
        temp_store.add_domain("example.com")

        assert temp_store.exists("example.com")
        assert not temp_store.exists("other.com")

    def test_get_missing_domain(self, temp_store):
        assert temp_store.get_domain("missing.com") is None


class TestSaveAndUpdate:
    """Test persisting analyses."""

    def test_save_inserts_new_domain(self, temp_store):
        row = temp_store.save_analysis(analysis("example.com", traffic_score=55, estimated_traffic=1200, web_presence=9))

        assert row["status"] == "available"
        assert row["traffic_score"] == 55
        assert row["estimated_traffic"] == 1200
        assert row["web_presence"] == 9

    def test_save_updates_existing_domain(self, temp_store):
        temp_store.add_domain("example.com")

        temp_store.save_analysis(analysis("example.com", status=DomainStatus.REGISTERED, traffic_score=70))

        row = temp_store.get_domain("example.com")
        assert row["status"] == "registered"
        assert row["traffic_score"] == 70
        assert len(temp_store.list_domains(search="example.com")) == 1

    def test_update_requires_existing_row(self, temp_store):
        with pytest.raises(DomainNotFoundError):
            temp_store.update_analysis(analysis("missing.com"))

        assert not temp_store.exists("missing.com")

    def test_update_existing_row(self, temp_store):
        temp_store.add_domain("example.com")

        row = temp_store.update_analysis(analysis("example.com", traffic_score=33, has_redirect=True,
                                                  redirect_url="https://new.com/"))

        assert row["traffic_score"] == 33
        assert row["has_redirect"] is True
        assert row["redirect_url"] == "https://new.com/"
        assert row["last_checked"].startswith("2024-06-01")


class TestListDomains:
    """Test browsing rules."""

    @pytest.fixture
    def populated(self, temp_store):
        temp_store.save_analysis(analysis("alpha.com", traffic_score=80, estimated_traffic=12000, indexed_pages=5))
        temp_store.save_analysis(analysis("beta.com", traffic_score=20, estimated_traffic=90, indexed_pages=50))
        temp_store.save_analysis(analysis("gamma.net", status=DomainStatus.REGISTERED, traffic_score=95,
                                          estimated_traffic=18000))
        temp_store.add_domain("delta.com")
        temp_store.add_domain("ab.io", status=DomainStatus.AVAILABLE)
        return temp_store

    def test_without_search_only_available(self, populated):
        domains = [r["domain"] for r in populated.list_domains()]

        assert domains == ["alpha.com", "beta.com", "ab.io"]

    def test_substring_search_is_case_insensitive(self, populated):
        domains = {r["domain"] for r in populated.list_domains(search="AMM")}

        assert domains == {"gamma.net"}

    def test_short_search_must_match_exactly(self, populated):
        assert populated.list_domains(search="ab") == []
        assert [r["domain"] for r in populated.list_domains(search="ab.io")] == ["ab.io"]

    def test_substring_search_includes_every_status(self, populated):
        domains = {r["domain"] for r in populated.list_domains(search=".com")}

        assert domains == {"alpha.com", "beta.com", "delta.com"}

    def test_min_traffic(self, populated):
        domains = [r["domain"] for r in populated.list_domains(min_traffic=1000)]

        assert domains == ["alpha.com"]

    def test_sort_by_indexed_pages(self, populated):
        domains = [r["domain"] for r in populated.list_domains(sort_by="indexed_pages")]

        assert domains == ["beta.com", "alpha.com", "ab.io"]

    def test_unscored_rows_sort_last(self, populated):
        domains = [r["domain"] for r in populated.list_domains(search=".com", sort_by="traffic_score")]

        assert domains == ["alpha.com", "beta.com", "delta.com"]

    def test_limit(self, populated):
        assert len(populated.list_domains(limit=1)) == 1

    def test_unknown_sort_field(self, populated):
        with pytest.raises(ValueError):
            populated.list_domains(sort_by="domain")

    def test_list_pending(self, populated):
        assert populated.list_pending() == ["delta.com"]

    def test_count_by_status(self, populated):
        assert populated.count_by_status() == {"available": 3, "registered": 1, "pending": 1}


class TestStoreErrors:
    """Test failure surfacing."""

    def test_unreachable_database_raises_store_error(self, tmp_path):
        store = DomainStore(f"sqlite:///{tmp_path / 'missing-dir' / 'domains.db'}")

        with pytest.raises(StoreError):
            store.init_db()

    def test_unknown_status_is_rejected(self, temp_store):
        with pytest.raises(ValueError):
            temp_store.add_domain("example.com", status="sold")

        assert not temp_store.exists("example.com")


class TestRetryOperation:
    """Test linear-backoff retries."""

    def test_retries_then_succeeds(self):
        attempts = []
        sleeps = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StoreError("connection reset")
            return "ok"

        assert retry_operation(flaky, max_retries=3, delay=1.0, sleep=sleeps.append) == "ok"
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        sleeps = []

        def broken():
            raise StoreError("connection reset")

        with pytest.raises(StoreError, match="connection reset"):
            retry_operation(broken, max_retries=3, delay=0.5, sleep=sleeps.append)

        assert sleeps == [0.5, 1.0]

    def test_timeouts_are_not_retried(self):
        attempts = []

        def slow():
            attempts.append(1)
            raise OperationalError("SELECT 1", {}, Exception("canceling statement due to statement timeout"))

        with pytest.raises(StoreError, match="timed out"):
            retry_operation(slow, sleep=lambda s: None)

        assert len(attempts) == 1

    def test_other_errors_propagate_immediately(self):
        attempts = []

        def missing():
            attempts.append(1)
            raise DomainNotFoundError("missing.com")

        with pytest.raises(DomainNotFoundError):
            retry_operation(missing, sleep=lambda s: None)

        assert len(attempts) == 1
