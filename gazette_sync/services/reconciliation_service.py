"""Reconcile fetched DJEN records against the local communications store"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from gazette_sync.services.communication_store import CommunicationStore, UpsertOutcome
from gazette_sync.services.gazette_client import AttorneyFetchResult
from gazette_sync.services.gazette_records import DisclosureRecord

logger = logging.getLogger(__name__)


def dedup_key_for(record: DisclosureRecord, attorney_name: str) -> str:
    """
    External id when DJEN supplied one, else process|date|attorney.

    The composite fallback is a heuristic: if DJEN assigns different ids to
    the same disclosure across runs, duplicates can still slip through.
    """
    if record.external_id and record.external_id.strip():
        return record.external_id.strip()
    return "|".join([
        record.process_number.digits,
        record.disclosure_date.isoformat(),
        attorney_name,
    ])


@dataclass
class ReconciliationStats:
    """Per-run counters returned to callers of sync_pending_processes"""
    total: int = 0
    synced: int = 0
    updated: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)
    # attorney -> process numbers of newly inserted communications
    new_by_attorney: Dict[str, List[str]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "synced": self.synced,
            "updated": self.updated,
            "errors": self.errors,
        }


class ReconciliationService:
    """
    Turns fetch results into idempotent upserts.

    Records sharing a dedup key within one run collapse to the one fetched
    last (later attorney, then higher page), so pagination overlap never
    produces two writes for the same key.
    """

    def __init__(self, store: CommunicationStore):
        self.store = store

    @staticmethod
    def collapse(fetches: Sequence[AttorneyFetchResult]) -> List[Tuple[str, DisclosureRecord, str]]:
        """Unique (dedup_key, record, attorney) triples, later fetches winning"""
        latest: "OrderedDict[str, Tuple[DisclosureRecord, str]]" = OrderedDict()
        for fetch in fetches:
            ordered = sorted(fetch.records, key=lambda r: r.page)
            for record in ordered:
                key = dedup_key_for(record, fetch.attorney_name)
                latest[key] = (record, fetch.attorney_name)
        return [(key, record, attorney) for key, (record, attorney) in latest.items()]

    async def reconcile(
        self,
        fetches: Sequence[AttorneyFetchResult],
        stats: Optional[ReconciliationStats] = None,
    ) -> ReconciliationStats:
        """Upsert every fetched record; stats, when given, is filled in as records land"""
        stats = stats if stats is not None else ReconciliationStats()

        for fetch in fetches:
            stats.total += len(fetch.records)
            if fetch.failed:
                stats.errors += 1
                stats.error_messages.append(fetch.error)
            if fetch.invalid_items:
                stats.errors += fetch.invalid_items
                stats.error_messages.append(
                    f"{fetch.attorney_name}: {fetch.invalid_items} invalid item(s) skipped"
                )

        for key, record, attorney in self.collapse(fetches):
            try:
                outcome = await self.store.upsert(key, record, attorney)
            except Exception as e:
                logger.exception(f"Failed to persist communication {key}: {e}")
                await self.store.session.rollback()
                stats.errors += 1
                stats.error_messages.append(f"{record.process_number.value}: {e}")
                continue

            if outcome == UpsertOutcome.INSERTED:
                stats.synced += 1
                number = record.process_number.masked or record.process_number.digits
                stats.new_by_attorney.setdefault(attorney, []).append(number)
            elif outcome == UpsertOutcome.UPDATED:
                stats.updated += 1

        logger.info(
            f"Reconciled {stats.total} records: {stats.synced} new, "
            f"{stats.updated} updated, {stats.errors} errors"
        )
        return stats
