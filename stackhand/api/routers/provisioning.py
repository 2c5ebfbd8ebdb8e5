"""Bootstrap callback and provisioning control."""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
import structlog

from stackhand.config import Settings
from stackhand.errors import ValidationFailed
from stackhand.models import Server
from stackhand.provisioning.signing import callback_path, signed_callback_url, verify_signature
from stackhand.provisioning.tracker import ProvisionStepTracker

from ..dependencies import get_app_settings, get_owned_server, get_tracker
from ..schemas import CallbackUrlRead, ProvisionStepReport, ServerRead

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/servers/{server_id}/provision", tags=["provisioning"])


def _parse_step(raw: str | int | None) -> int:
    if raw is None or raw == "":
        raise ValidationFailed.single("step", "The step field is required.")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed.single("step", "The step must be an integer.") from None


@router.post("/step")
async def report_step(
    server_id: int,
    report: ProvisionStepReport | None = None,
    expires: int | None = Query(None),
    signature: str | None = Query(None),
    step: str | None = Query(None),
    step_status: str | None = Query(None, alias="status"),
    tracker: ProvisionStepTracker = Depends(get_tracker),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """Called by the bootstrap script running on the server.

    Authenticated by the URL signature only. ``step`` and ``status`` come
    from the query string or, failing that, the JSON body.
    """
    if not verify_signature(
        settings.callback_signing_key, callback_path(server_id), expires, signature
    ):
        logger.warning("provision_callback_rejected", server_id=server_id)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": "Invalid or expired signature"},
        )

    report = report or ProvisionStepReport()
    raw_step = step if step is not None else report.step
    label = step_status if step_status is not None else report.status
    try:
        number = _parse_step(raw_step)
        if not label:
            raise ValidationFailed.single("status", "The status field is required.")
        await tracker.report_step(server_id, number, label)
    except ValidationFailed as e:
        logger.info("provision_callback_invalid", server_id=server_id, errors=e.errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(e), "errors": e.errors},
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content={"ok": True})


@router.get("/callback-url", response_model=CallbackUrlRead)
async def get_callback_url(
    server: Server = Depends(get_owned_server),
    settings: Settings = Depends(get_app_settings),
) -> CallbackUrlRead:
    """A freshly signed callback URL for (re)running the bootstrap script."""
    return CallbackUrlRead(url=signed_callback_url(settings, server.id))


@router.post("/retry", response_model=ServerRead, status_code=status.HTTP_202_ACCEPTED)
async def retry_provisioning(
    server: Server = Depends(get_owned_server),
    tracker: ProvisionStepTracker = Depends(get_tracker),
) -> Server:
    return await tracker.retry(server.id)
