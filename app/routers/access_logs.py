# app/routers/access_logs.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.access_log import AccessLogOut
from app.services.access_log_service import list_access_logs
from typing import Optional

router = APIRouter()

@router.get("/access-logs", response_model=list[AccessLogOut], summary="Door access history, newest first")
def get_access_logs(
    reservation_id: Optional[str] = None,
    property_id: Optional[str] = None,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """Filter by reservation_id or property_id."""
    return list_access_logs(db, reservation_id=reservation_id, property_id=property_id, limit=limit)
