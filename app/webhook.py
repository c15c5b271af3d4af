"""Particle Cloud webhook endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from app.dependencies import get_ingestion_service
from app.schemas import ErrorResponse, WebhookAccepted, WebhookPayload
from services.errors import DeviceNotFoundError, PayloadValidationError, StorageError
from services.ingestion import IngestionService

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

router = APIRouter()


def _respond(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


def _error(status_code: int, message: str) -> JSONResponse:
    return _respond(status_code, ErrorResponse(error=message).model_dump())


@router.options("/", include_in_schema=False)
async def webhook_preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post(
    "/",
    response_model=WebhookAccepted,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Receive a temperature event forwarded by the Particle Cloud webhook.",
)
async def receive_webhook(
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Rejecting webhook with a non-JSON body", extra={"reason": "invalid json"})
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    if not isinstance(body, dict):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid webhook payload")

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as exc:
        logger.warning(
            "Rejecting webhook with malformed fields",
            extra={"coreid": body.get("coreid"), "reason": exc.errors()[0]["msg"]},
        )
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid webhook payload")

    try:
        result = service.ingest(payload)
    except PayloadValidationError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except DeviceNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Device not found or inactive")
    except StorageError:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to store temperature reading"
        )
    except Exception:
        logger.exception(
            "Unexpected failure while ingesting webhook",
            extra={"coreid": payload.coreid},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    accepted = WebhookAccepted(
        device=result.device_name,
        temperature=result.temperature,
        timestamp=result.published_at,
    )
    return _respond(status.HTTP_200_OK, accepted.model_dump())


@router.api_route(
    "/",
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def webhook_method_not_allowed() -> JSONResponse:
    return _error(status.HTTP_405_METHOD_NOT_ALLOWED, "Method not allowed")
