"""
PostgreSQL repository adapters - Implement the domain persistence ports.

This module provides psycopg3 implementations of TrackedDomainRepository,
NotificationStore and PreferenceStore using raw parameterized SQL.

Race safety lives in the schema, not in application locks:

1. **user_tracked_domains_user_domain_key**: UNIQUE (user_id, domain_id).
   create_tracked_domain uses ON CONFLICT DO NOTHING and returns None when
   a concurrent request inserted first.

2. **notifications_tracked_domain_type_key**: UNIQUE (tracked_domain_id, type).
   create_notification is insert-if-absent; exactly one concurrent caller
   gets a row back, every other caller gets None.

3. **verification_failed_at**: mark_verification_failing uses COALESCE so a
   repeated mark never restarts the grace clock.
"""

import logging
from datetime import datetime
from pathlib import Path

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from domainstack.domain.ports import (
    CertificateExpiryTarget,
    DomainExpiryTarget,
    NotificationContent,
    NotificationPreferences,
    NotificationRecord,
    NotificationType,
    TrackedDomain,
    VerificationMethod,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

_TRACKED_COLUMNS = """
    utd.id, utd.user_id, utd.domain_id, utd.verification_token,
    utd.verification_method, utd.verified, utd.verification_status,
    utd.verification_failed_at, utd.archived_at, utd.notification_overrides,
    utd.created_at
"""

_ACTIVE_VERIFIED = "utd.verified = TRUE AND utd.archived_at IS NULL"


def _to_tracked_domain(row: dict) -> TrackedDomain:
    method = row.get("verification_method")
    return TrackedDomain(
        id=row["id"],
        user_id=row["user_id"],
        domain_id=row["domain_id"],
        verification_token=row["verification_token"],
        domain_name=row.get("domain_name"),
        verification_method=VerificationMethod(method) if method else None,
        verified=row["verified"],
        verification_status=VerificationStatus(row["verification_status"]),
        verification_failed_at=row.get("verification_failed_at"),
        archived_at=row.get("archived_at"),
        notification_overrides=dict(row.get("notification_overrides") or {}),
        user_email=row.get("user_email"),
        user_name=row.get("user_name"),
        created_at=row.get("created_at"),
    )


class PostgresTrackedDomainRepository:
    """
    Implements TrackedDomainRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def _fetch_one(self, sql: str, params: tuple) -> dict | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            return cursor.fetchone()

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            return cursor.fetchall()

    def _execute(self, sql: str, params: tuple) -> int:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()
            return cursor.rowcount

    def ensure_domain(self, name: str) -> str:
        """
        Return the id of the Domain row for name, inserting it if absent.

        The no-op DO UPDATE makes RETURNING yield the id on conflict too.
        """
        sql = """
            INSERT INTO domains (name) VALUES (%s)
            ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
            RETURNING id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (name,))
            row = cursor.fetchone()
            conn.commit()
            return row[0]

    def find_tracked_domain(self, user_id: str, domain_id: str) -> TrackedDomain | None:
        sql = f"""
            SELECT {_TRACKED_COLUMNS}
            FROM user_tracked_domains utd
            WHERE utd.user_id = %s AND utd.domain_id = %s
        """
        row = self._fetch_one(sql, (user_id, domain_id))
        return _to_tracked_domain(row) if row else None

    def find_tracked_domain_by_id(self, tracked_domain_id: str) -> TrackedDomain | None:
        sql = f"SELECT {_TRACKED_COLUMNS} FROM user_tracked_domains utd WHERE utd.id = %s"
        row = self._fetch_one(sql, (tracked_domain_id,))
        return _to_tracked_domain(row) if row else None

    def find_tracked_domain_with_domain_name(self, tracked_domain_id: str) -> TrackedDomain | None:
        sql = f"""
            SELECT {_TRACKED_COLUMNS},
                   d.name AS domain_name, u.email AS user_email, u.name AS user_name
            FROM user_tracked_domains utd
            JOIN domains d ON d.id = utd.domain_id
            JOIN users u ON u.id = utd.user_id
            WHERE utd.id = %s
        """
        row = self._fetch_one(sql, (tracked_domain_id,))
        return _to_tracked_domain(row) if row else None

    def count_active_tracked_domains(self, user_id: str) -> int:
        sql = """
            SELECT COUNT(*) FROM user_tracked_domains
            WHERE user_id = %s AND archived_at IS NULL
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (user_id,))
            return cursor.fetchone()[0]

    def create_tracked_domain(
        self, user_id: str, domain_id: str, verification_token: str
    ) -> TrackedDomain | None:
        """
        Insert a new unverified claim.

        Returns:
            The claim, or None when (user_id, domain_id) already exists
        """
        sql = """
            INSERT INTO user_tracked_domains (user_id, domain_id, verification_token)
            VALUES (%s, %s, %s)
            ON CONFLICT ON CONSTRAINT user_tracked_domains_user_domain_key DO NOTHING
            RETURNING id, user_id, domain_id, verification_token, verification_method,
                      verified, verification_status, verification_failed_at,
                      archived_at, notification_overrides, created_at
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (user_id, domain_id, verification_token))
            row = cursor.fetchone()
            conn.commit()
        return _to_tracked_domain(row) if row else None

    def verify_tracked_domain(self, tracked_domain_id: str, method: VerificationMethod) -> None:
        sql = """
            UPDATE user_tracked_domains
            SET verified = TRUE,
                verification_method = %s,
                verification_status = 'verified',
                verification_failed_at = NULL,
                verified_at = NOW(),
                last_verified_at = NOW()
            WHERE id = %s
        """
        self._execute(sql, (VerificationMethod(method).value, tracked_domain_id))

    def mark_verification_failing(self, tracked_domain_id: str) -> None:
        sql = """
            UPDATE user_tracked_domains
            SET verification_status = 'failing',
                verification_failed_at = COALESCE(verification_failed_at, NOW())
            WHERE id = %s
        """
        self._execute(sql, (tracked_domain_id,))

    def mark_verification_successful(self, tracked_domain_id: str) -> None:
        sql = """
            UPDATE user_tracked_domains
            SET verification_status = 'verified',
                verification_failed_at = NULL,
                last_verified_at = NOW()
            WHERE id = %s
        """
        self._execute(sql, (tracked_domain_id,))

    def revoke_verification(self, tracked_domain_id: str) -> None:
        sql = """
            UPDATE user_tracked_domains
            SET verified = FALSE,
                verification_method = NULL,
                verification_status = 'unverified',
                verification_failed_at = NULL
            WHERE id = %s
        """
        self._execute(sql, (tracked_domain_id,))

    def get_pending_tracked_domain_ids(self) -> list[str]:
        sql = """
            SELECT id FROM user_tracked_domains
            WHERE verified = FALSE AND archived_at IS NULL
            ORDER BY created_at
        """
        return [row["id"] for row in self._fetch_all(sql)]

    def get_verified_tracked_domain_ids(self) -> list[str]:
        sql = f"""
            SELECT utd.id FROM user_tracked_domains utd
            WHERE {_ACTIVE_VERIFIED} AND utd.verification_method IS NOT NULL
            ORDER BY utd.created_at
        """
        return [row["id"] for row in self._fetch_all(sql)]

    def _domain_expiry_sql(self, where: str) -> str:
        return f"""
            SELECT utd.id AS tracked_domain_id, utd.user_id, u.email AS user_email,
                   u.name AS user_name, d.name AS domain_name, r.expiration_date,
                   r.registrar, utd.notification_overrides
            FROM user_tracked_domains utd
            JOIN domains d ON d.id = utd.domain_id
            JOIN users u ON u.id = utd.user_id
            LEFT JOIN registrations r ON r.domain_id = utd.domain_id
            WHERE {where}
        """

    def _certificate_sql(self, where: str) -> str:
        return f"""
            SELECT utd.id AS tracked_domain_id, utd.user_id, u.email AS user_email,
                   u.name AS user_name, d.name AS domain_name, c.valid_to, c.issuer,
                   utd.notification_overrides
            FROM user_tracked_domains utd
            JOIN domains d ON d.id = utd.domain_id
            JOIN users u ON u.id = utd.user_id
            JOIN certificates c ON c.domain_id = utd.domain_id
            WHERE {where}
        """

    def get_verified_tracked_domains_with_expiry(self) -> list[DomainExpiryTarget]:
        sql = self._domain_expiry_sql(f"{_ACTIVE_VERIFIED} AND r.expiration_date IS NOT NULL")
        return [DomainExpiryTarget(**row) for row in self._fetch_all(sql)]

    def get_verified_tracked_domains_certificates(self) -> list[CertificateExpiryTarget]:
        sql = self._certificate_sql(_ACTIVE_VERIFIED)
        return [CertificateExpiryTarget(**row) for row in self._fetch_all(sql)]

    def get_domain_expiry_target(self, tracked_domain_id: str) -> DomainExpiryTarget | None:
        row = self._fetch_one(self._domain_expiry_sql(f"{_ACTIVE_VERIFIED} AND utd.id = %s"), (tracked_domain_id,))
        return DomainExpiryTarget(**row) if row else None

    def get_certificate_expiry_target(self, tracked_domain_id: str) -> CertificateExpiryTarget | None:
        row = self._fetch_one(self._certificate_sql(f"{_ACTIVE_VERIFIED} AND utd.id = %s"), (tracked_domain_id,))
        return CertificateExpiryTarget(**row) if row else None

    def delete_stale_unverified_domains(self, cutoff: datetime) -> int:
        sql = """
            DELETE FROM user_tracked_domains
            WHERE verified = FALSE AND archived_at IS NULL AND created_at < %s
        """
        return self._execute(sql, (cutoff,))

    def set_notification_overrides(self, tracked_domain_id: str, overrides: dict[str, bool]) -> None:
        sql = "UPDATE user_tracked_domains SET notification_overrides = %s WHERE id = %s"
        self._execute(sql, (Jsonb(overrides), tracked_domain_id))


class PostgresNotificationStore:
    """
    Implements NotificationStore protocol via psycopg3.

    The UNIQUE (tracked_domain_id, type) constraint is the claim: an
    insert that hits it returns no row and the caller skips sending.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create_notification(
        self,
        tracked_domain_id: str,
        notification_type: NotificationType,
        content: NotificationContent | None = None,
    ) -> NotificationRecord | None:
        sql = """
            INSERT INTO notifications
                (tracked_domain_id, type, user_id, title, message, data, channels)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT ON CONSTRAINT notifications_tracked_domain_type_key DO NOTHING
            RETURNING id, tracked_domain_id, type, created_at, external_message_id,
                      user_id, title, message, data, channels
        """
        params = (
            tracked_domain_id,
            NotificationType(notification_type).value,
            content.user_id if content else None,
            content.title if content else "",
            content.message if content else "",
            Jsonb(content.data if content else {}),
            Jsonb(list(content.channels) if content else ["email"]),
        )
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()
        if row is None:
            return None
        return NotificationRecord(
            id=row["id"],
            tracked_domain_id=row["tracked_domain_id"],
            type=NotificationType(row["type"]),
            created_at=row["created_at"],
            external_message_id=row["external_message_id"],
            user_id=row["user_id"],
            title=row["title"],
            message=row["message"],
            channels=tuple(row["channels"] or ()),
            data=dict(row["data"] or {}),
        )

    def has_notification_been_sent(
        self, tracked_domain_id: str, notification_type: NotificationType
    ) -> bool:
        sql = "SELECT 1 FROM notifications WHERE tracked_domain_id = %s AND type = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (tracked_domain_id, NotificationType(notification_type).value))
            return cursor.fetchone() is not None

    def has_recent_notification(
        self, tracked_domain_id: str, notification_type: NotificationType, days: int = 30
    ) -> bool:
        sql = """
            SELECT 1 FROM notifications
            WHERE tracked_domain_id = %s AND type = %s
              AND created_at > NOW() - make_interval(days => %s)
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (tracked_domain_id, NotificationType(notification_type).value, days))
            return cursor.fetchone() is not None

    def update_notification_resend_id(
        self, tracked_domain_id: str, notification_type: NotificationType, message_id: str
    ) -> bool:
        sql = """
            UPDATE notifications SET external_message_id = %s
            WHERE tracked_domain_id = %s AND type = %s
        """
        return self._execute(sql, (message_id, tracked_domain_id, NotificationType(notification_type).value)) == 1

    def release_notification(
        self, tracked_domain_id: str, notification_type: NotificationType
    ) -> bool:
        sql = """
            DELETE FROM notifications
            WHERE tracked_domain_id = %s AND type = %s AND external_message_id IS NULL
        """
        return self._execute(sql, (tracked_domain_id, NotificationType(notification_type).value)) == 1

    def clear_domain_expiry_notifications(self, tracked_domain_id: str) -> int:
        sql = "DELETE FROM notifications WHERE tracked_domain_id = %s AND type LIKE 'domain_expiry\\_%%'"
        return self._execute(sql, (tracked_domain_id,))

    def clear_certificate_expiry_notifications(self, tracked_domain_id: str) -> int:
        sql = "DELETE FROM notifications WHERE tracked_domain_id = %s AND type LIKE 'certificate_expiry\\_%%'"
        return self._execute(sql, (tracked_domain_id,))

    def _execute(self, sql: str, params: tuple) -> int:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()
            return cursor.rowcount


class PostgresPreferenceStore:
    """Implements PreferenceStore protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_or_create_user_notification_preferences(self, user_id: str) -> NotificationPreferences:
        """Return the user's global switches, inserting all-on defaults if absent."""
        insert_sql = """
            INSERT INTO user_notification_preferences (user_id) VALUES (%s)
            ON CONFLICT (user_id) DO NOTHING
        """
        select_sql = """
            SELECT domain_expiry, certificate_expiry, verification_status,
                   registration_changes, provider_changes, certificate_changes
            FROM user_notification_preferences WHERE user_id = %s
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(insert_sql, (user_id,))
            cursor.execute(select_sql, (user_id,))
            row = cursor.fetchone()
            conn.commit()
        return NotificationPreferences(**row) if row else NotificationPreferences()


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: domainstack/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).resolve().parents[3] / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
