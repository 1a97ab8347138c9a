"""
Contact Matcher

Links each parsed transaction to an existing contact (profile).

Strategies, in priority order:
1. Email      - exact, case-insensitive
2. Card       - card ending + holder seen before (card_profile_links)
3. Name       - Cyrillic transliteration of the holder equals a full name
4. Fuzzy name - transliterated holder matches exactly one profile

DESIGN DECISION: Three bulk queries per file, no query per record.
Exports have thousands of rows and the matcher runs before the
operator even sees the reconciliation report.
"""

from collections import Counter
from typing import Optional

import structlog

from bepaid_reconciler.matching.transliteration import (
    match_card_name_to_profile,
    transliterate_to_cyrillic,
)
from bepaid_reconciler.models.records import ProfileRecord
from bepaid_reconciler.models.transaction import MatchedBy, ParsedTransaction
from bepaid_reconciler.services.storage import ReconciliationStorageInterface


logger = structlog.get_logger()

BRAND_ALIASES = {
    "visa": "visa",
    "mastercard": "mastercard",
    "master": "mastercard",
    "mc": "mastercard",
    "belkart": "belkart",
    "maestro": "maestro",
    "mir": "mir",
}


def normalize_brand(brand: Optional[str]) -> str:
    """Canonical lowercase card brand ("MC" -> "mastercard")."""
    if not brand:
        return ""
    b = brand.strip().lower()
    return BRAND_ALIASES.get(b, b)


def card_key(last4: str, holder: Optional[str]) -> str:
    return f"{last4}|{holder or ''}"


class ContactMatcher:
    """
    Annotates transactions with the contact they belong to.

    Usage:
        matcher = ContactMatcher(storage)
        await matcher.match(transactions)
        # tx.matched_profile_id / tx.matched_by are now set
    """

    def __init__(
        self,
        storage: ReconciliationStorageInterface,
        fuzzy_names: bool = True,
    ):
        self._storage = storage
        self._fuzzy_names = fuzzy_names

    async def match(self, transactions: list[ParsedTransaction]) -> dict[str, int]:
        """
        Match transactions to contacts in place.

        Args:
            transactions: Parsed transactions, mutated in place

        Returns:
            Count of transactions per matched_by value
        """
        emails = sorted({t.customer_email for t in transactions if t.customer_email})
        last4s = sorted({t.card_last4 for t in transactions if t.card_last4})

        email_map: dict[str, ProfileRecord] = {}
        if emails:
            for profile in await self._storage.get_profiles_by_emails(emails):
                if profile.email:
                    email_map[profile.email.lower()] = profile

        card_map: dict[str, tuple[str, str]] = {}
        if last4s:
            for link in await self._storage.get_card_links_by_last4(last4s):
                card_map[card_key(link.card_last4, link.card_holder)] = (
                    link.profile_id,
                    link.profile_name or "",
                )

        named_profiles = await self._storage.list_named_profiles()
        name_map: dict[str, ProfileRecord] = {
            p.full_name.lower(): p for p in named_profiles if p.full_name
        }

        for tx in transactions:
            self._match_one(tx, email_map, card_map, name_map, named_profiles)

        counts = Counter(t.matched_by.value for t in transactions)
        logger.info("contacts_matched", total=len(transactions), **counts)
        return dict(counts)

    def _match_one(
        self,
        tx: ParsedTransaction,
        email_map: dict[str, ProfileRecord],
        card_map: dict[str, tuple[str, str]],
        name_map: dict[str, ProfileRecord],
        named_profiles: list[ProfileRecord],
    ) -> None:
        if tx.customer_email:
            profile = email_map.get(tx.customer_email.lower())
            if profile:
                self._assign(tx, profile.id, profile.full_name or "", MatchedBy.EMAIL)
                return

        if tx.card_last4 and tx.card_holder:
            linked = card_map.get(card_key(tx.card_last4, tx.card_holder))
            if linked:
                self._assign(tx, linked[0], linked[1], MatchedBy.CARD)
                return

        if tx.card_holder:
            cyrillic = transliterate_to_cyrillic(tx.card_holder).lower()
            profile = name_map.get(cyrillic)
            if profile:
                self._assign(tx, profile.id, profile.full_name or "", MatchedBy.NAME)
                return

            if self._fuzzy_names:
                candidates = [
                    p for p in named_profiles
                    if match_card_name_to_profile(tx.card_holder, p.full_name or "")
                ]
                # Ambiguous names are left for manual linking
                if len(candidates) == 1:
                    profile = candidates[0]
                    self._assign(tx, profile.id, profile.full_name or "", MatchedBy.NAME)
                    return

        tx.matched_by = MatchedBy.NONE

    @staticmethod
    def _assign(
        tx: ParsedTransaction,
        profile_id: str,
        profile_name: str,
        matched_by: MatchedBy,
    ) -> None:
        tx.matched_profile_id = profile_id
        tx.matched_profile_name = profile_name
        tx.matched_by = matched_by
