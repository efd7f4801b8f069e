"""
Webhook endpoints for Gitea and Gogs push notifications.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.requests import ClientDisconnect

from giteahook.models.api_response import WebhookResponse
from giteahook.services.dispatcher import PushDispatcher
from giteahook.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


def get_dispatcher(request: Request) -> PushDispatcher:
    """Dispatcher installed on the application by create_app()."""
    return request.app.state.dispatcher


@router.post("/", response_model=WebhookResponse)
@router.post("/webhook", response_model=WebhookResponse)
async def handle_push_webhook(
    request: Request,
    dispatcher: PushDispatcher = Depends(get_dispatcher)
) -> WebhookResponse:
    """
    Receive a Gitea/Gogs webhook and run the matching commands.

    This endpoint:
    1. Reads the raw body (passed unchanged to every command)
    2. Hands headers and body to the dispatcher
    3. Returns 200 OK once all commands have finished, whatever their outcome

    Args:
        request: FastAPI request object
        dispatcher: Push dispatcher

    Returns:
        WebhookResponse with the dispatch status and a short summary

    Raises:
        HTTPException: If the request body cannot be read
    """
    try:
        body = await request.body()
    except ClientDisconnect as e:
        logger.error(f"while reading request body: {e!r}")
        raise HTTPException(status_code=400, detail="Could not read request body")

    result = await dispatcher.handle(request.headers, body)

    return WebhookResponse(status=result.status.value, message=result.message)
