"""Health checks for the booking service and its backing stores"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.redis import ping_broker
from app.config.settings import get_settings

settings = get_settings()

health_router = APIRouter()


@health_router.get("")
async def health_check():
    return {"status": "healthy", "service": "booking-orchestration"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """
    Database and broker reachability plus email configuration.

    Email and calendar are best-effort for bookings, so only the database
    and the reconciliation broker count toward the overall status.
    """
    checks = {
        "database": "unknown",
        "broker": "unknown",
        "email": "configured" if settings.email_configured else "not configured",
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    try:
        checks["broker"] = "healthy" if await ping_broker() else "unhealthy: no PONG"
    except Exception as e:
        checks["broker"] = f"unhealthy: {str(e)}"

    required = (checks["database"], checks["broker"])
    checks["overall"] = "healthy" if all(s == "healthy" for s in required) else "degraded"
    return checks
