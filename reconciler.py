"""Contact identity reconciliation.

A request carrying an email and/or phone number either matches nothing (a new
primary contact is created), matches one group (the request is a lookup, or
adds a secondary when it brings a new email or phone), or matches several
groups. In the last case the groups are merged: the oldest primary survives and
every younger primary, together with its secondaries, is linked under it.

Groups are always one level deep: a secondary's ``linkedId`` names a primary.
"""
import logging
from typing import Iterable, List, Optional

from db_models import ConsolidatedContact, ContactRecord, LinkPrecedence
from errors import CorruptLinkage, InvalidInput
from store import ContactStore

logger = logging.getLogger(__name__)


def build_consolidated_contact(primary: ContactRecord, secondaries: Iterable[ContactRecord]) -> ConsolidatedContact:
    """Merge a group into one view, primary values first, skipping nulls and repeats."""
    secondaries = list(secondaries)
    emails: List[str] = []
    phone_numbers: List[str] = []

    for contact in [primary] + secondaries:
        if contact.email and contact.email not in emails:
            emails.append(contact.email)
        if contact.phoneNumber and contact.phoneNumber not in phone_numbers:
            phone_numbers.append(contact.phoneNumber)

    return ConsolidatedContact(
        primaryContactId=primary.id,
        emails=emails,
        phoneNumbers=phone_numbers,
        secondaryContactIds=[contact.id for contact in secondaries],
    )


class Reconciler:
    def __init__(self, store: ContactStore):
        self.store = store

    def identify(self, email: Optional[str] = None, phone_number: Optional[str] = None) -> ConsolidatedContact:
        email = email or None
        phone_number = phone_number or None
        if email is None and phone_number is None:
            raise InvalidInput("At least one of email or phoneNumber is required.")

        matches = self.store.find_by_email_or_phone(email, phone_number)

        if not matches:
            contact = self.store.create(email, phone_number, LinkPrecedence.PRIMARY)
            logger.info("no match, created primary contact %s", contact.id)
            return build_consolidated_contact(contact, [])

        with self.store.transaction():
            roots = self._resolve_roots(matches)
            primary = roots[0]
            if len(roots) > 1:
                self._merge(primary, roots[1:])

        secondaries = self.store.find_by_linked_id(primary.id)

        if self._is_new_information(email, phone_number, [primary] + secondaries):
            contact = self.store.create(email, phone_number, LinkPrecedence.SECONDARY, primary.id)
            logger.info("added secondary contact %s under primary %s", contact.id, primary.id)
            secondaries.append(contact)

        return build_consolidated_contact(primary, secondaries)

    def _resolve_roots(self, matches: List[ContactRecord]) -> List[ContactRecord]:
        """Return the distinct primaries of ``matches``, oldest first.

        A root that turns out to be a secondary is a two-level chain; its
        children are re-pointed to its own primary and resolution continues
        one level up.
        """
        root_ids = set()
        for record in matches:
            if record.root_id is None:
                raise CorruptLinkage(f"secondary contact {record.id} has no linkedId")
            root_ids.add(record.root_id)

        visited = set()
        while True:
            roots = self.store.find_by_ids(root_ids)
            missing = root_ids - {root.id for root in roots}
            if missing:
                raise CorruptLinkage(f"contacts link to missing primaries {sorted(missing)}")

            nested = [root for root in roots if not root.is_primary]
            if not nested:
                return roots

            for record in nested:
                if record.id in visited or record.linkedId is None:
                    raise CorruptLinkage(f"cannot resolve a primary for contact {record.id}")
                visited.add(record.id)
                logger.warning(
                    "contact %s is a secondary with its own secondaries, re-pointing them to %s",
                    record.id,
                    record.linkedId,
                )
                self.store.reassign_linked_id(record.id, record.linkedId)
                root_ids.discard(record.id)
                root_ids.add(record.linkedId)

    def _merge(self, primary: ContactRecord, others: List[ContactRecord]) -> None:
        for other in others:
            self.store.update_linkage(other.id, LinkPrecedence.SECONDARY, primary.id)
            moved = self.store.reassign_linked_id(other.id, primary.id)
            logger.info(
                "merged primary %s into %s, re-pointed %d secondaries",
                other.id,
                primary.id,
                moved,
            )

    @staticmethod
    def _is_new_information(email, phone_number, group: List[ContactRecord]) -> bool:
        emails = {contact.email for contact in group if contact.email}
        phone_numbers = {contact.phoneNumber for contact in group if contact.phoneNumber}
        return bool(
            (email and email not in emails)
            or (phone_number and phone_number not in phone_numbers)
        )
