# app/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + issuer/verifier reachability.
"""

import requests
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from app.database import get_db
from app.config import settings
from app.utils.clock import utcnow

router = APIRouter()


def _probe(base_url: str, token) -> str:
    try:
        resp = requests.get(base_url, headers={"Access-Token": token or ""}, timeout=3)
    except requests.exceptions.ConnectionError:
        return "unreachable"
    except requests.exceptions.Timeout:
        return "timeout"
    except requests.exceptions.RequestException as e:
        return f"error: {str(e)}"
    # Any answer below 500 means the service is up, even if the root path is not routable
    return "ok" if resp.status_code < 500 else f"http_{resp.status_code}"


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Issuer / verifier reachability
    """
    result = {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "external": {},
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    for name, url, token in (
        ("issuer", settings.ISSUER_API_URL, settings.ISSUER_ACCESS_TOKEN),
        ("verifier", settings.VERIFIER_API_URL, settings.VERIFIER_ACCESS_TOKEN),
    ):
        result["external"][name] = _probe(url, token)
        if result["external"][name] != "ok":
            result["status"] = "degraded"

    return result
