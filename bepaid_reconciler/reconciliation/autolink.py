"""
Card Autolink

Links historical payments and queue rows to a contact once the
contact's card is known.

DESIGN DECISION: Safety first.
- P0: payments carrying the same provider token
- P1: payments and queue rows with the same last4 AND brand
- A last4-only match is never used
- A row already linked to another contact is never overwritten
- A card already linked to another contact stops the run
- Too many candidates stop the run unless explicitly allowed
- Dry run is the default
"""

import re
import time
from typing import Optional
from uuid import UUID

import structlog

from bepaid_reconciler.audit import AuditLogger
from bepaid_reconciler.config import AutolinkSettings, get_settings
from bepaid_reconciler.matching.contacts import normalize_brand
from bepaid_reconciler.models.reports import (
    AutolinkRequest,
    AutolinkResult,
    AutolinkSample,
    AutolinkStats,
)
from bepaid_reconciler.services.storage import ReconciliationStorageInterface


logger = structlog.get_logger()

MAX_SAMPLES = 10
# Rows fetched beyond the limit so the stop check sees real overflow
FETCH_BUFFER = 100

LAST4_RE = re.compile(r"^\d{4}$")


class CardAutolinker:
    """
    Runs card-based autolinking for one contact.

    Usage:
        autolinker = CardAutolinker(storage, audit_logger)
        result = await autolinker.run(AutolinkRequest(
            profile_id="...", card_last4="1234", card_brand="visa",
        ))
    """

    def __init__(
        self,
        storage: ReconciliationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AutolinkSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().autolink

    async def run(
        self,
        request: AutolinkRequest,
        correlation_id: Optional[UUID] = None,
    ) -> AutolinkResult:
        """
        Find and (unless dry run) link the card's unlinked rows.

        Args:
            request: Target contact, card and run options
            correlation_id: Ties audit events to the user action

        Returns:
            AutolinkResult with status success, stop or error
        """
        started = time.monotonic()
        dry_run = request.dry_run

        if not request.profile_id or not request.card_last4 or not request.card_brand:
            return AutolinkResult(
                ok=False,
                dry_run=dry_run,
                status="error",
                stop_reason="missing_required_params",
            )

        last4 = request.card_last4.strip()
        if not LAST4_RE.match(last4):
            return AutolinkResult(
                ok=False,
                dry_run=dry_run,
                status="error",
                stop_reason="invalid_last4",
            )

        brand = normalize_brand(request.card_brand)
        profile_id = request.profile_id
        limit = request.limit or self._settings.limit
        log = logger.bind(profile_id=profile_id, last4=last4, brand=brand, dry_run=dry_run)
        log.info("autolink_started")

        # Guard: the card must not belong to anyone else
        other_owners = await self._other_owners(last4, brand, profile_id)
        if other_owners:
            log.warning("autolink_card_collision", other_profiles=len(other_owners))
            result = AutolinkResult(
                ok=False,
                dry_run=dry_run,
                status="stop",
                stop_reason="card_collision_last4_brand",
            )
            await self._audit.log_autolink_finished(
                profile_id=profile_id,
                dry_run=dry_run,
                stop_reason=result.stop_reason,
                stats={
                    "last4": last4,
                    "brand": brand,
                    "other_profiles": sorted(other_owners)[:5],
                },
                correlation_id=correlation_id,
            )
            return result

        stats = AutolinkStats()
        conflicts: list[AutolinkSample] = []
        payments_to_link: list[AutolinkSample] = []

        # P0: provider token
        token_ids: set[str] = set()
        if request.provider_token:
            for p in await self._storage.list_payments(
                payment_token=request.provider_token,
                limit=limit,
            ):
                if not p.profile_id:
                    token_ids.add(p.id)
                    payments_to_link.append(AutolinkSample(
                        id=p.id,
                        bepaid_uid=p.provider_payment_id,
                        amount=p.amount,
                        paid_at=p.paid_at,
                        reason="provider_token",
                    ))
                elif p.profile_id != profile_id:
                    stats.conflicts += 1
                    conflicts.append(AutolinkSample(
                        id=p.id,
                        bepaid_uid=p.provider_payment_id,
                        amount=p.amount,
                        reason="profile_id_mismatch_token",
                    ))

        # P1: last4 + brand
        for p in await self._storage.list_payments(
            card_last4=last4,
            card_brand=brand,
            limit=limit + FETCH_BUFFER,
        ):
            if p.id in token_ids:
                continue
            if not p.profile_id:
                payments_to_link.append(AutolinkSample(
                    id=p.id,
                    bepaid_uid=p.provider_payment_id,
                    amount=p.amount,
                    paid_at=p.paid_at,
                    reason="last4_brand",
                ))
            elif p.profile_id == profile_id:
                stats.skipped_already_linked += 1
            else:
                stats.conflicts += 1
                conflicts.append(AutolinkSample(
                    id=p.id,
                    bepaid_uid=p.provider_payment_id,
                    amount=p.amount,
                    reason="profile_id_mismatch",
                ))

        queue_to_link: list[AutolinkSample] = []
        for q in await self._storage.list_queue(
            card_last4=last4,
            card_brand=brand,
            limit=limit + FETCH_BUFFER,
        ):
            if not q.matched_profile_id:
                queue_to_link.append(AutolinkSample(
                    id=q.id,
                    bepaid_uid=q.bepaid_uid,
                    amount=q.amount or 0,
                    paid_at=q.paid_at,
                    reason="last4_brand",
                ))
            elif q.matched_profile_id == profile_id:
                stats.skipped_already_linked += 1
            else:
                stats.conflicts += 1
                conflicts.append(AutolinkSample(
                    id=q.id,
                    bepaid_uid=q.bepaid_uid,
                    amount=q.amount or 0,
                    reason="matched_profile_id_mismatch",
                ))

        stats.candidates_payments = len(payments_to_link)
        stats.candidates_queue = len(queue_to_link)
        total_candidates = stats.candidates_payments + stats.candidates_queue

        if total_candidates > limit and not request.unsafe_allow_large:
            log.warning("autolink_too_many_candidates", candidates=total_candidates, limit=limit)
            result = AutolinkResult(
                ok=False,
                dry_run=dry_run,
                status="stop",
                stats=stats,
                stop_reason="too_many_candidates",
                conflicts=conflicts[:MAX_SAMPLES],
            )
            await self._audit.log_autolink_finished(
                profile_id=profile_id,
                dry_run=dry_run,
                stop_reason=result.stop_reason,
                stats={**stats.model_dump(), "last4": last4, "brand": brand, "limit": limit},
                correlation_id=correlation_id,
            )
            return result

        if dry_run:
            samples = payments_to_link[:MAX_SAMPLES]
        else:
            batch_size = self._settings.batch_size
            samples = []
            for i in range(0, len(payments_to_link), batch_size):
                batch = payments_to_link[i:i + batch_size]
                stats.updated_payments_profile += await self._storage.link_payment_profile(
                    [s.id for s in batch],
                    profile_id,
                )
                samples.extend(batch[:5])
            for i in range(0, len(queue_to_link), batch_size):
                batch = queue_to_link[i:i + batch_size]
                stats.updated_queue_profile += await self._storage.link_queue_profile(
                    [s.id for s in batch],
                    profile_id,
                )

        result = AutolinkResult(
            ok=True,
            dry_run=dry_run,
            status="success",
            stats=stats,
            payments_updated=samples[:MAX_SAMPLES],
            conflicts=conflicts[:MAX_SAMPLES],
        )
        await self._audit.log_autolink_finished(
            profile_id=profile_id,
            dry_run=dry_run,
            stop_reason=None,
            stats={
                **stats.model_dump(),
                "user_id": request.user_id,
                "last4": last4,
                "brand": brand,
                "limit": limit,
                "unsafe_allow_large": request.unsafe_allow_large,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
            correlation_id=correlation_id,
        )
        log.info(
            "autolink_finished",
            payments=stats.updated_payments_profile,
            queue=stats.updated_queue_profile,
        )
        return result

    async def _other_owners(self, last4: str, brand: str, profile_id: str) -> set[str]:
        """Profiles other than the target already linked to the card."""
        owners: set[str] = set()
        for link in await self._storage.get_card_links_by_last4([last4]):
            if normalize_brand(link.card_brand) == brand:
                owners.add(link.profile_id)

        methods = [
            m for m in await self._storage.get_active_payment_methods([last4])
            if normalize_brand(m.brand) == brand
        ]
        user_ids = [m.user_id for m in methods if m.user_id]
        if user_ids:
            for profile in await self._storage.get_profiles_by_user_ids(user_ids):
                owners.add(profile.id)

        owners.discard(profile_id)
        return owners
