"""External profile import endpoints for the onboarding front end."""

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger

from src.profile_import.api.http.deps import get_import_flow
from src.profile_import.core.errors import ImportFlowError, PersistFailed
from src.profile_import.core.services import ImportFlowOrchestrator
from src.profile_import.runtime.context import get_config

router_external = APIRouter(prefix="/external", tags=["external-import"])


def _state_cookie_settings() -> dict[str, Any]:
    """Cookie attributes for the issued state.

    SameSite=Lax still sends the cookie on the provider's top-level GET
    redirect back to the callback.
    """
    return {
        "httponly": True,
        "secure": get_config().app.environment == "production",
        "samesite": "lax",
        "path": "/",
    }


def _clear_state_cookie(response: RedirectResponse, flow: ImportFlowOrchestrator) -> None:
    response.delete_cookie(flow.state_cookie_name, **_state_cookie_settings())


@router_external.get("/start")
async def start_import(
    session_id: str | None = None,
    redirect: str | None = None,
    flow: ImportFlowOrchestrator = Depends(get_import_flow),
):
    """Start the import flow by redirecting to the provider's consent page.

    Returns 503 when the provider is not configured for this deployment and
    400 when no onboarding session id is given.
    """
    if not flow.is_configured():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": "External profile import not configured",
                "message": "Provider client_id, client_secret and redirect_uri must be set",
            },
        )

    if not session_id or not session_id.strip():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "session_id is required"},
        )

    result = flow.start(session_id=session_id, redirect=redirect)

    response = RedirectResponse(
        url=result.authorization_url, status_code=status.HTTP_302_FOUND
    )
    response.set_cookie(
        key=flow.state_cookie_name,
        value=result.state_token,
        max_age=flow.state_ttl_seconds,
        **_state_cookie_settings(),
    )
    return response


@router_external.get("/callback")
async def handle_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    flow: ImportFlowOrchestrator = Depends(get_import_flow),
) -> RedirectResponse:
    """Complete the import and redirect back to the onboarding page.

    The state cookie is cleared on every outcome.
    """
    # Avoid logging code/state values
    logger.debug("Import callback received")

    try:
        outcome = await flow.complete(
            code=code,
            state=state,
            cookie_state=request.cookies.get(flow.state_cookie_name),
            error=error,
            error_description=error_description,
        )
        redirect_url = outcome.redirect_url
    except Exception:
        logger.exception("Import callback failed unexpectedly")
        redirect_url = flow.error_redirect_url(
            ImportFlowError("Unexpected callback failure")
        )

    response = RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)
    _clear_state_cookie(response, flow)
    return response


@router_external.get("/profile")
async def get_imported_profile(
    session_id: str | None = None,
    flow: ImportFlowOrchestrator = Depends(get_import_flow),
) -> JSONResponse:
    """Return the stored external profile and its physician-profile mapping."""
    if not session_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "session_id is required"},
        )

    try:
        imported = await flow.load_import(session_id)
    except PersistFailed as e:
        logger.error("Reading imported profile failed: {}", e.provider_message or e.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to fetch profile"},
        )

    if imported is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "success": False,
                "error": "Imported profile not found for this session",
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "profile": imported.profile.model_dump(
                mode="json", by_alias=True, exclude_none=True
            ),
            "mappedData": imported.mapped.to_response(),
        },
    )


@router_external.delete("/profile")
async def clear_imported_profile(
    session_id: str | None = None,
    flow: ImportFlowOrchestrator = Depends(get_import_flow),
) -> JSONResponse:
    """Discard an imported profile once onboarding has consumed it."""
    if not session_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "session_id is required"},
        )

    try:
        await flow.discard_import(session_id)
    except PersistFailed as e:
        logger.error("Clearing imported profile failed: {}", e.provider_message or e.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to clear profile"},
        )

    return JSONResponse(status_code=status.HTTP_200_OK, content={"success": True})


@router_external.get("/status")
async def import_status(
    flow: ImportFlowOrchestrator = Depends(get_import_flow),
) -> dict[str, bool]:
    """Whether the import flow is available, so the UI can hide the button."""
    return {"configured": flow.is_configured()}
