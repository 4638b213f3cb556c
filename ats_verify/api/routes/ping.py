import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ats_verify.dependencies.auth import CurrentUser, Role, role_required

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready", summary="Readiness probe checking the Postgres pool")
async def ready(request: Request) -> dict[str, str]:
    postgres = getattr(request.app.state, "postgres", None)
    if postgres is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    try:
        await postgres.test_connection()
    except Exception as exc:  # noqa: BLE001 - any driver failure means not ready
        logger.warning("Readiness check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database is unavailable") from exc
    return {"status": "ok", "database": "ok"}


@router.get(
    "/secure",
    summary="Admin-only probe reporting the resolved role",
    dependencies=[Depends(role_required(Role.ADMIN))],
)
async def secure_ping(user: CurrentUser) -> dict[str, str]:
    return {"status": "ok", "user": user.username, "role": user.role.value}
