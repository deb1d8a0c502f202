import io
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from admin_queries import DEFAULT_PAGE_SIZE, list_events, list_registrations
from analytics import event_analytics
from database import get_db
from events_service import create_event, delete_event, get_event, get_event_or_404, update_event
from exports import XLSX_MEDIA_TYPE, paid_registrations_csv, paid_registrations_workbook, unpaid_registrations_workbook
from models import AdminLog, PaymentStatus, User
from payments import delete_registration, registrations_by_status, update_payment_status
from schemas import (
    ActionResponse,
    AdminEventPage,
    AdminLogResponse,
    AdminRegistrationPage,
    AnalyticsResponse,
    EventCategoryEnum,
    EventCreate,
    EventResponse,
    EventSortKey,
    EventUpdate,
    ImageUploadResponse,
    PaymentStatusEnum,
    PaymentUpdateRequest,
    PresignRequest,
    PresignResponse,
    RegistrationSortKey,
    SortDirection,
)
from security import require_admin
from utils import log_admin_action, presign_event_image, upload_event_image

router = APIRouter()


def _download_name(title: str, suffix: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9._-]+", "_", title or "event").strip("_") or "event"
    return f"{slug}_registrations.{suffix}"


# Events
@router.get("/admin/events", response_model=AdminEventPage)
def admin_list_events(
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    search: Optional[str] = Query(None),
    sort: EventSortKey = Query(EventSortKey.DATE),
    direction: SortDirection = Query(SortDirection.DESC),
    category: Optional[EventCategoryEnum] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return list_events(db, page=page, page_size=page_size, search=search, sort=sort, direction=direction, category=category)


@router.post("/admin/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def admin_create_event(
    event_data: EventCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return create_event(db, admin, event_data, path=request.url.path)


@router.post("/admin/events/image", response_model=ImageUploadResponse)
def admin_upload_event_image(
    request: Request,
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    url = upload_event_image(file)
    log_admin_action(db, admin, "upload_event_image", method="POST", path=request.url.path, meta={"url": url})
    return ImageUploadResponse(url=url)


@router.post("/admin/events/image/presign", response_model=PresignResponse)
def admin_presign_event_image(
    payload: PresignRequest,
    admin: User = Depends(require_admin)
):
    return PresignResponse(**presign_event_image(payload.filename, payload.content_type))


@router.get("/admin/events/{event_id}", response_model=EventResponse)
def admin_get_event(event_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return get_event(db, event_id)


@router.put("/admin/events/{event_id}", response_model=EventResponse)
def admin_update_event(
    event_id: int,
    event_data: EventUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return update_event(db, admin, event_id, event_data, path=request.url.path)


@router.delete("/admin/events/{event_id}", response_model=ActionResponse)
def admin_delete_event(
    event_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    delete_event(db, admin, event_id, path=request.url.path)
    return ActionResponse(message="Event deleted")


# Registrations
@router.get("/admin/registrations", response_model=AdminRegistrationPage)
def admin_list_registrations(
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    search: Optional[str] = Query(None),
    sort: RegistrationSortKey = Query(RegistrationSortKey.CREATED_AT),
    direction: SortDirection = Query(SortDirection.DESC),
    payment_status: Optional[PaymentStatusEnum] = Query(None),
    event_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return list_registrations(
        db,
        page=page,
        page_size=page_size,
        search=search,
        sort=sort,
        direction=direction,
        payment_status=payment_status,
        event_id=event_id,
    )


@router.post("/admin/update-payment", response_model=ActionResponse)
def admin_update_payment(
    payload: PaymentUpdateRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    registration = update_payment_status(
        db, admin, payload.id, PaymentStatus(payload.payment_status.value), path=request.url.path
    )
    return ActionResponse(message=f"{registration.registration_id} marked {registration.payment_status.value}")


@router.delete("/admin/registrations/{registration_key}", response_model=ActionResponse)
def admin_delete_registration(
    registration_key: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    delete_registration(db, admin, registration_key, path=request.url.path)
    return ActionResponse(message="Registration deleted")


# Analytics
@router.get("/admin/analytics", response_model=AnalyticsResponse)
def admin_analytics(
    days: int = Query(7, ge=1, le=365),
    top: int = Query(5, ge=1, le=50),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return event_analytics(db, trend_days=days, top_limit=top)


# Exports
@router.get("/admin/download-registrations")
def admin_download_registrations(
    event_id: int = Query(...),
    format: str = Query("xlsx", pattern="^(xlsx|csv)$"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registrations = registrations_by_status(db, PaymentStatus.PAID, event_id=event.id)
    if format == "xlsx":
        content = paid_registrations_workbook(event, registrations)
        return StreamingResponse(
            io.BytesIO(content),
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{_download_name(event.title, "xlsx")}"'}
        )
    content = paid_registrations_csv(event, registrations)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{_download_name(event.title, "csv")}"'}
    )


@router.get("/admin/download-unpaid-registrations")
def admin_download_unpaid_registrations(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    content = unpaid_registrations_workbook(registrations_by_status(db, PaymentStatus.UNPAID))
    return StreamingResponse(
        io.BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="unpaid_registrations.xlsx"'}
    )


# Audit log
@router.get("/admin/logs", response_model=List[AdminLogResponse])
def admin_logs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    action: Optional[str] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(AdminLog)
    if action:
        query = query.filter(AdminLog.action == action.strip())
    logs = query.order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).offset(offset).limit(limit).all()
    return [AdminLogResponse.model_validate(row) for row in logs]
