"""Persistence for contact records.

``ContactStore`` is the interface the reconciler talks to; ``SqliteContactStore``
implements it on the ``Contact`` table created by ``db_setup``. Every query
ignores soft-deleted rows.
"""
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List, Optional

from db_models import ContactRecord, LinkPrecedence
from errors import StoreConflict, StoreError, StoreUnavailable

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactStore(ABC):
    """Storage operations needed to reconcile contacts."""

    @abstractmethod
    def find_by_email_or_phone(self, email: Optional[str], phone_number: Optional[str]) -> List[ContactRecord]:
        """Records whose email or phone number matches; absent fields are skipped."""
        ...

    @abstractmethod
    def find_by_ids(self, ids: Iterable[int]) -> List[ContactRecord]:
        """Records with the given ids, oldest first (ties broken by id)."""
        ...

    @abstractmethod
    def find_by_linked_id(self, linked_id: int) -> List[ContactRecord]:
        """Records pointing at ``linked_id``, oldest first."""
        ...

    @abstractmethod
    def create(
        self,
        email: Optional[str],
        phone_number: Optional[str],
        link_precedence: LinkPrecedence,
        linked_id: Optional[int] = None,
    ) -> ContactRecord:
        ...

    @abstractmethod
    def update_linkage(self, contact_id: int, link_precedence: LinkPrecedence, linked_id: Optional[int]) -> None:
        ...

    @abstractmethod
    def reassign_linked_id(self, old_linked_id: int, new_linked_id: int) -> int:
        """Re-point every record linked to ``old_linked_id``; returns the row count."""
        ...

    @abstractmethod
    def transaction(self):
        """Context manager grouping writes: all of them apply or none do."""
        ...


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.IntegrityError as exc:
        raise StoreConflict(f"{operation}: {exc}") from exc
    except sqlite3.OperationalError as exc:
        raise StoreUnavailable(f"{operation}: {exc}") from exc
    except sqlite3.Error as exc:
        raise StoreError(f"{operation}: {exc}") from exc


class SqliteContactStore(ContactStore):
    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], datetime] = utcnow):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self.clock = clock
        self._depth = 0

    @contextmanager
    def transaction(self):
        if self._depth:
            # already inside a transaction; the outermost one commits
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            with translate_errors("commit"):
                self.conn.commit()
        except BaseException:
            self.conn.rollback()
            raise
        finally:
            self._depth = 0

    def _now(self) -> str:
        return self.clock().isoformat(timespec="microseconds")

    def _select(self, where: str, params) -> List[ContactRecord]:
        query = f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL AND ({where})
            ORDER BY createdAt ASC, id ASC
        """
        with translate_errors("select"):
            rows = self.conn.execute(query, params).fetchall()
        return [ContactRecord.model_validate(dict(row)) for row in rows]

    def find_by_email_or_phone(self, email, phone_number):
        clauses = []
        params = []
        if email:
            clauses.append("email = ?")
            params.append(email)
        if phone_number:
            clauses.append("phoneNumber = ?")
            params.append(phone_number)
        if not clauses:
            return []
        return self._select(" OR ".join(clauses), params)

    def find_by_ids(self, ids):
        ids = sorted(set(ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        return self._select(f"id IN ({placeholders})", ids)

    def find_by_linked_id(self, linked_id):
        return self._select("linkedId = ?", (linked_id,))

    def create(self, email, phone_number, link_precedence, linked_id=None):
        now = self._now()
        precedence = LinkPrecedence(link_precedence)

        with self.transaction(), translate_errors("create"):
            cursor = self.conn.execute(
                """
                INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (phone_number, email, linked_id, precedence.value, now, now),
            )
            contact_id = cursor.lastrowid

        logger.debug("created %s contact %s", precedence.value, contact_id)
        return ContactRecord(
            id=contact_id,
            email=email,
            phoneNumber=phone_number,
            linkedId=linked_id,
            linkPrecedence=precedence,
            createdAt=now,
            updatedAt=now,
        )

    def update_linkage(self, contact_id, link_precedence, linked_id):
        precedence = LinkPrecedence(link_precedence)
        with self.transaction(), translate_errors("update_linkage"):
            self.conn.execute(
                """
                UPDATE Contact
                SET linkedId = ?, linkPrecedence = ?, updatedAt = ?
                WHERE id = ?
                """,
                (linked_id, precedence.value, self._now(), contact_id),
            )

    def reassign_linked_id(self, old_linked_id, new_linked_id):
        with self.transaction(), translate_errors("reassign_linked_id"):
            cursor = self.conn.execute(
                """
                UPDATE Contact
                SET linkedId = ?, updatedAt = ?
                WHERE linkedId = ? AND deletedAt IS NULL
                """,
                (new_linked_id, self._now(), old_linked_id),
            )
        return cursor.rowcount
