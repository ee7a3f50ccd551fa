"""Extraction routes: upload a document, get its text (and analysis) back."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse

from docextract.errors import (
    BadRequestError,
    DocExtractError,
    PayloadTooLargeError,
    PollingTimeoutError,
    ProcessingError,
)
from docextract.models.extraction import UploadedFile
from docextract.utils.logging_utils import structured_log

router = APIRouter()

_API_LOG = logging.getLogger("api")
_T = TypeVar("_T")

NO_FILE_MESSAGE = "No file uploaded"
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    """The client went away before the pipeline finished."""


async def _await_unless_disconnected(
    request: Request, work: Awaitable[_T], *, interval: float
) -> _T:
    """Run ``work`` as a task, cancelling it if the client disconnects."""
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _pending = await asyncio.wait({task}, timeout=interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


async def _read_upload(file: UploadFile, *, max_bytes: int) -> UploadedFile:
    if file.size is not None and file.size > max_bytes:
        raise PayloadTooLargeError(f"Uploaded file exceeds {max_bytes} bytes")
    data = await file.read()
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"Uploaded file exceeds {max_bytes} bytes")
    if not data:
        raise BadRequestError("Uploaded file is empty")
    return UploadedFile(
        filename=file.filename or "",
        data=data,
        content_type=file.content_type,
    )


@router.post("/process", tags=["extract"])
async def process_document(request: Request, file: UploadFile | None = File(None)) -> JSONResponse:
    if file is None:
        raise BadRequestError(NO_FILE_MESSAGE)
    cfg = request.app.state.config
    pipeline = request.app.state.pipeline
    upload = await _read_upload(file, max_bytes=cfg.max_upload_bytes)

    try:
        result = await _await_unless_disconnected(
            request,
            pipeline.process(upload),
            interval=cfg.disconnect_check_interval_seconds,
        )
    except ClientDisconnected:
        structured_log(
            _API_LOG,
            logging.WARNING,
            "client_disconnected",
            upload_name=upload.filename,
            status_code=CLIENT_CLOSED_REQUEST,
        )
        return JSONResponse(status_code=CLIENT_CLOSED_REQUEST, content={"error": "Client closed request"})
    except PollingTimeoutError as exc:
        raise ProcessingError(str(exc), status_code=504) from exc
    except DocExtractError as exc:
        raise ProcessingError(str(exc)) from exc
    except Exception as exc:
        _API_LOG.exception("unexpected_pipeline_error", extra={"error": str(exc)})
        raise ProcessingError(str(exc) or type(exc).__name__) from exc

    return JSONResponse(result.to_dict())


__all__ = ["router", "ClientDisconnected", "NO_FILE_MESSAGE"]
