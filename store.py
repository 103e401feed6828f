"""
SQLAlchemy-backed domain store: one row per domain with its last analysis.

Uses DATABASE_URL (any SQLAlchemy URL); defaults to a local SQLite file.
Only the last computed values are kept, there is no score history.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, TypeVar

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config import get_settings
from scoring.models import DomainAnalysis, DomainStatus

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar('T')

SORT_FIELDS = ("traffic_score", "estimated_traffic", "indexed_pages")
DEFAULT_LIST_LIMIT = 50
MIN_SUBSTRING_SEARCH = 3


class StoreError(Exception):
    """The store could not complete an operation."""


class DomainNotFoundError(LookupError):
    """The domain has no row in the store."""

    def __init__(self, domain: str):
        super().__init__(f"Domain {domain} not found")
        self.domain = domain


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============== Model ==============

class DomainRecord(Base):
    """One tracked domain and the values from its last analysis. Signal columns stay NULL until scored."""

    __tablename__ = "domains"
    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'registered', 'pending', 'expired', 'error')",
            name="domains_status_check",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(String(253), unique=True, nullable=False, index=True)
    status = Column(String(16), nullable=False, default=DomainStatus.PENDING.value, index=True)
    traffic_score = Column(Integer, nullable=True)
    estimated_traffic = Column(Integer, nullable=True)
    archive_snapshots = Column(Integer, nullable=True)
    archive_frequency = Column(Float, nullable=True)
    indexed_pages = Column(Integer, nullable=True)
    social_mentions = Column(Integer, nullable=True)
    web_presence = Column(Integer, nullable=True)
    mail_score = Column(Float, nullable=True)
    has_redirect = Column(Boolean, nullable=True)
    redirect_url = Column(Text, nullable=True)
    is_parked = Column(Boolean, nullable=True)
    has_ssl = Column(Boolean, nullable=True)
    has_www = Column(Boolean, nullable=True)
    has_robots_txt = Column(Boolean, nullable=True)
    has_sitemap = Column(Boolean, nullable=True)
    last_checked = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def apply(self, analysis: DomainAnalysis) -> None:
        """Copy an analysis onto this row."""
        self.status = analysis.status.value
        self.traffic_score = analysis.traffic_score
        self.estimated_traffic = analysis.estimated_traffic
        self.archive_snapshots = analysis.archive_snapshots
        self.archive_frequency = analysis.archive_frequency
        self.indexed_pages = analysis.indexed_pages
        self.social_mentions = analysis.social_mentions
        self.web_presence = analysis.web_presence
        self.mail_score = analysis.mail_score
        self.has_redirect = analysis.has_redirect
        self.redirect_url = analysis.redirect_url
        self.is_parked = analysis.is_parked
        self.has_ssl = analysis.has_ssl
        self.has_www = analysis.has_www
        self.has_robots_txt = analysis.has_robots_txt
        self.has_sitemap = analysis.has_sitemap
        self.last_checked = analysis.last_checked

    def to_dict(self) -> dict[str, Any]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "domain": self.domain,
            "status": self.status,
            "traffic_score": self.traffic_score,
            "estimated_traffic": self.estimated_traffic,
            "archive_snapshots": self.archive_snapshots,
            "archive_frequency": self.archive_frequency,
            "indexed_pages": self.indexed_pages,
            "social_mentions": self.social_mentions,
            "web_presence": self.web_presence,
            "mail_score": self.mail_score,
            "has_redirect": self.has_redirect,
            "redirect_url": self.redirect_url,
            "is_parked": self.is_parked,
            "has_ssl": self.has_ssl,
            "has_www": self.has_www,
            "has_robots_txt": self.has_robots_txt,
            "has_sitemap": self.has_sitemap,
            "last_checked": iso(self.last_checked),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ============== Store ==============

class DomainStore:
    """
    Read and write domain rows.

    Every public method runs in its own session: committed on success,
    rolled back on error. SQLAlchemy errors surface as StoreError.
    """

    def __init__(self, database_url: str | None = None):
        self.database_url = database_url or get_settings().database_url
        connect_args = {}
        if self.database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_engine(self.database_url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.exception("Failed to initialise database")
            raise StoreError(str(e)) from e
        logger.info("Domain store ready (%s)", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()

    def add_domain(self, domain: str, status: DomainStatus = DomainStatus.PENDING) -> bool:
        """
        Insert a domain that has not been analyzed yet.
        Returns True if inserted, False if it was already tracked.
        """
        try:
            with self._session_scope() as session:
                session.add(DomainRecord(domain=domain, status=DomainStatus(status).value))
                session.flush()
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                logger.info("Domain already tracked: %s", domain)
                return False
            raise
        logger.info("Domain added: %s", domain)
        return True

    def exists(self, domain: str) -> bool:
        with self._session_scope() as session:
            return session.query(DomainRecord.id).filter(DomainRecord.domain == domain).first() is not None

    def get_domain(self, domain: str) -> dict[str, Any] | None:
        """Return one domain's row as a dict, or None if it is not tracked."""
        with self._session_scope() as session:
            row = session.query(DomainRecord).filter(DomainRecord.domain == domain).first()
            return row.to_dict() if row else None

    def save_analysis(self, analysis: DomainAnalysis) -> dict[str, Any]:
        """Insert or update the row for an analysed domain."""
        with self._session_scope() as session:
            row = session.query(DomainRecord).filter(DomainRecord.domain == analysis.domain).first()
            if row is None:
                row = DomainRecord(domain=analysis.domain)
                session.add(row)
            row.apply(analysis)
            session.flush()
            logger.debug("Saved analysis for %s (score %d)", analysis.domain, analysis.traffic_score)
            return row.to_dict()

    def update_analysis(self, analysis: DomainAnalysis) -> dict[str, Any]:
        """Update an already tracked domain. Raises DomainNotFoundError otherwise."""
        with self._session_scope() as session:
            row = session.query(DomainRecord).filter(DomainRecord.domain == analysis.domain).first()
            if row is None:
                raise DomainNotFoundError(analysis.domain)
            row.apply(analysis)
            session.flush()
            return row.to_dict()

    def list_domains(
        self,
        search: str | None = None,
        min_traffic: int = 0,
        sort_by: str = "traffic_score",
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[dict[str, Any]]:
        """
        Browse tracked domains.

        Without a search term only ``available`` domains are listed. Terms
        of three or more characters match as a case-insensitive substring,
        shorter ones must match the whole domain. Results are sorted
        descending on ``sort_by`` with unscored rows last.
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")

        search = (search or "").strip().lower()
        sort_column = getattr(DomainRecord, sort_by)

        with self._session_scope() as session:
            q = session.query(DomainRecord)
            if not search:
                q = q.filter(DomainRecord.status == DomainStatus.AVAILABLE.value)
            elif len(search) >= MIN_SUBSTRING_SEARCH:
                q = q.filter(func.lower(DomainRecord.domain).contains(search, autoescape=True))
            else:
                q = q.filter(DomainRecord.domain == search)

            if min_traffic > 0:
                q = q.filter(DomainRecord.estimated_traffic >= min_traffic)

            rows = (
                q.order_by(sort_column.is_(None), sort_column.desc(), DomainRecord.id)
                .limit(limit)
                .all()
            )
            return [r.to_dict() for r in rows]

    def list_pending(self, limit: int = 100) -> list[str]:
        """Domains added but never analysed, oldest first."""
        with self._session_scope() as session:
            rows = (
                session.query(DomainRecord.domain)
                .filter(DomainRecord.status == DomainStatus.PENDING.value)
                .order_by(DomainRecord.id)
                .limit(limit)
                .all()
            )
            return [r[0] for r in rows]

    def count_by_status(self) -> dict[str, int]:
        with self._session_scope() as session:
            rows = session.query(DomainRecord.status, func.count(DomainRecord.id)).group_by(DomainRecord.status).all()
            return {status: count for status, count in rows}


def _is_timeout(error: Exception) -> bool:
    cause = error.__cause__ or error
    if isinstance(cause, PoolTimeoutError):
        return True
    message = str(error).lower()
    # 57014: PostgreSQL query_canceled (statement timeout)
    return "timeout" in message or "timed out" in message or "57014" in message


def retry_operation(
    operation: Callable[[], T],
    max_retries: int = 3,
    delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run a store operation, retrying store failures with linear backoff.

    The n-th retry waits ``delay * n`` seconds. Timeouts are not retried.
    Anything other than a store failure propagates immediately.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return operation()
        except (StoreError, SQLAlchemyError) as e:
            if _is_timeout(e):
                raise StoreError("Operation timed out. Please try again.") from e
            if attempt == max_retries:
                raise
            logger.warning("Store operation failed (attempt %d/%d): %s", attempt, max_retries, e)
            sleep(delay * attempt)
    raise StoreError("max_retries must be at least 1")
