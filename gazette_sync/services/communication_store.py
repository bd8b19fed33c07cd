"""Local store for ingested DJEN communications"""
import csv
import io
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from gazette_sync.db.models import Communication, utcnow
from gazette_sync.services.gazette_records import DisclosureRecord

logger = logging.getLogger(__name__)

# Fields a later fetch is allowed to refresh on an existing row
DESCRIPTIVE_FIELDS = ("text", "communication_type", "court")

EXPORT_COLUMNS = [
    "id", "dedup_key", "external_id", "process_number", "process_number_masked",
    "court", "disclosure_date", "channel", "communication_type", "organ_name",
    "communication_number", "document_type", "class_name", "recipients", "attorney_recipients",
    "text", "link", "attorney_name", "read", "read_at", "ingested_at", "updated_at",
]


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class CommunicationNotFound(LookupError):
    """Raised when a communication id does not exist"""
    pass


@dataclass(frozen=True)
class CommunicationFilter:
    """Optional criteria for listing communications"""
    read: Optional[bool] = None
    attorney_name: Optional[str] = None
    process_number: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: Optional[int] = None


def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        return pg_insert
    if dialect_name == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Unsupported database dialect: {dialect_name}")


class CommunicationStore:
    """
    Persistence for LocalCommunication rows.

    Ingestion only ever inserts or refreshes descriptive fields; the read
    flag belongs to the user and is touched only by mark_read/mark_all_read.
    Every write is committed on its own so concurrent readers never see a
    half-written record.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_dedup_key(self, dedup_key: str) -> Optional[Communication]:
        result = await self.session.execute(
            select(Communication).where(Communication.dedup_key == dedup_key)
        )
        return result.scalar_one_or_none()

    async def get(self, communication_id: int) -> Optional[Communication]:
        return await self.session.get(Communication, communication_id)

    async def _insert_if_absent(self, dedup_key: str, record: DisclosureRecord, attorney_name: str) -> bool:
        """INSERT ... ON CONFLICT DO NOTHING; True when this call created the row"""
        now = utcnow()
        insert = _insert_for(self.session.get_bind().dialect.name)
        stmt = (
            insert(Communication)
            .values(
                dedup_key=dedup_key,
                external_id=record.external_id,
                process_number=record.process_number.digits,
                process_number_masked=record.process_number.masked,
                court=record.court,
                disclosure_date=record.disclosure_date,
                channel=record.channel,
                communication_type=record.communication_type,
                organ_name=record.organ_name,
                communication_number=record.communication_number,
                document_type=record.document_type,
                class_name=record.class_name,
                recipients=[r.as_dict() for r in record.recipients],
                attorney_recipients=[a.as_dict() for a in record.attorney_recipients],
                text=record.text,
                link=record.link,
                attorney_name=attorney_name,
                read=False,
                ingested_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["dedup_key"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def upsert(self, dedup_key: str, record: DisclosureRecord, attorney_name: str) -> UpsertOutcome:
        """Insert a new communication or refresh the descriptive fields of an existing one"""
        existing = await self.get_by_dedup_key(dedup_key)

        if existing is None:
            if await self._insert_if_absent(dedup_key, record, attorney_name):
                await self.session.commit()
                return UpsertOutcome.INSERTED
            # Lost a race with a concurrent writer; fall through to the update path
            await self.session.commit()
            existing = await self.get_by_dedup_key(dedup_key)
            if existing is None:
                raise RuntimeError(f"Communication {dedup_key} vanished after insert conflict")

        changes = {
            name: getattr(record, name) for name in DESCRIPTIVE_FIELDS
            if getattr(existing, name) != getattr(record, name)
        }
        if not changes:
            return UpsertOutcome.UNCHANGED

        await self.session.execute(
            update(Communication)
            .where(Communication.id == existing.id)
            .values(**changes, updated_at=utcnow())
        )
        await self.session.commit()
        await self.session.refresh(existing)
        return UpsertOutcome.UPDATED

    async def list_communications(self, filters: Optional[CommunicationFilter] = None) -> List[Communication]:
        """Communications ordered by disclosure date, newest first"""
        filters = filters or CommunicationFilter()
        query = select(Communication)

        if filters.read is not None:
            query = query.where(Communication.read == filters.read)
        if filters.attorney_name:
            query = query.where(Communication.attorney_name == filters.attorney_name)
        if filters.process_number:
            digits = "".join(ch for ch in filters.process_number if ch.isdigit())
            query = query.where(Communication.process_number == digits)
        if filters.date_from:
            query = query.where(Communication.disclosure_date >= filters.date_from)
        if filters.date_to:
            query = query.where(Communication.disclosure_date <= filters.date_to)

        query = query.order_by(Communication.disclosure_date.desc(), Communication.id.desc())
        if filters.limit:
            query = query.limit(filters.limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_unread(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Communication).where(Communication.read == False)  # noqa: E712
        )
        return result.scalar() or 0

    async def mark_read(self, communication_id: int) -> Communication:
        """Mark one communication as read (user action)"""
        communication = await self.get(communication_id)
        if communication is None:
            raise CommunicationNotFound(f"Communication {communication_id} not found")

        if not communication.read:
            communication.read = True
            communication.read_at = utcnow()
            await self.session.commit()
        return communication

    async def mark_all_read(self) -> int:
        """Mark every unread communication as read; returns how many changed"""
        result = await self.session.execute(
            update(Communication)
            .where(Communication.read == False)  # noqa: E712
            .values(read=True, read_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount or 0

    async def export_all(self) -> List[Dict[str, Any]]:
        """Read-only serialization of every communication"""
        rows = await self.list_communications()
        exported = []
        for row in rows:
            data = {}
            for column in EXPORT_COLUMNS:
                value = getattr(row, column)
                if hasattr(value, "isoformat"):
                    value = value.isoformat()
                data[column] = value
            exported.append(data)
        return exported

    async def export_csv(self) -> str:
        """CSV export for spreadsheets, with a UTF-8 BOM so Excel detects the encoding"""
        headers: Tuple[str, ...] = ("Data", "Tribunal", "Processo", "Tipo", "Órgão", "Status")
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerow(headers)
        for row in await self.list_communications():
            writer.writerow([
                row.disclosure_date.strftime("%d/%m/%Y"),
                row.court or "",
                row.process_number_masked or row.process_number,
                row.communication_type or "N/A",
                row.organ_name or "N/A",
                "Lida" if row.read else "Não Lida",
            ])
        return "\ufeff" + buffer.getvalue()
