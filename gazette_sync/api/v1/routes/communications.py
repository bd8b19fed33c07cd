"""Communication listing, read state and export routes"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from gazette_sync.db.models import utcnow
from gazette_sync.db.session import get_db
from gazette_sync.api.v1.schemas.communications import (
    CommunicationListResponse, CommunicationResponse, MarkAllReadResponse, UnreadCountResponse
)
from gazette_sync.services.communication_store import (
    CommunicationFilter, CommunicationNotFound, CommunicationStore
)
from gazette_sync.services.gazette_records import normalize_attorney_name


router = APIRouter(prefix="/communications", tags=["Communications"])


@router.get("", response_model=CommunicationListResponse)
async def list_communications(
    read: Optional[bool] = Query(None, description="Filter by read state"),
    attorney: Optional[str] = Query(None, description="Monitored attorney name"),
    process_number: Optional[str] = Query(None, description="Masked or digits-only process number"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Communications ordered by disclosure date, newest first"""
    filters = CommunicationFilter(
        read=read,
        attorney_name=normalize_attorney_name(attorney) if attorney else None,
        process_number=process_number,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
    rows = await CommunicationStore(db).list_communications(filters)
    return CommunicationListResponse(
        communications=[CommunicationResponse.model_validate(row) for row in rows],
        total=len(rows),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(db: AsyncSession = Depends(get_db)):
    """Number of communications not yet read"""
    return UnreadCountResponse(unread=await CommunicationStore(db).count_unread())


@router.get("/export")
async def export_communications(db: AsyncSession = Depends(get_db)):
    """Every stored communication as JSON"""
    return await CommunicationStore(db).export_all()


@router.get("/export.csv")
async def export_communications_csv(db: AsyncSession = Depends(get_db)):
    """Spreadsheet-friendly CSV export"""
    content = await CommunicationStore(db).export_csv()
    filename = f"comunicacoes_djen_{utcnow().date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(db: AsyncSession = Depends(get_db)):
    """Mark every unread communication as read"""
    return MarkAllReadResponse(updated=await CommunicationStore(db).mark_all_read())


@router.post("/{communication_id}/read", response_model=CommunicationResponse)
async def mark_read(communication_id: int, db: AsyncSession = Depends(get_db)):
    """Mark one communication as read"""
    try:
        communication = await CommunicationStore(db).mark_read(communication_id)
    except CommunicationNotFound:
        raise HTTPException(status_code=404, detail="Communication not found")
    return CommunicationResponse.model_validate(communication)
