"""Helpers for generating RFC 7807 error responses."""

from __future__ import annotations

import secrets
from typing import Any, Mapping

from fastapi.responses import JSONResponse

DEFAULT_TYPE = "about:blank"
PROBLEM_MEDIA_TYPE = "application/problem+json"
CORRELATION_HEADER = "X-Correlation-ID"


def new_correlation_id() -> str:
    return secrets.token_urlsafe(16)


def problem_response(
    *,
    status: int,
    title: str,
    detail: str,
    code: str,
    type_: str = DEFAULT_TYPE,
    instance: str | None = None,
    extras: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    correlation_id: str | None = None,
) -> JSONResponse:
    """
    Build a problem details response.

    `code` is a stable machine-readable identifier clients can branch on.
    The correlation id is mirrored in the `X-Correlation-ID` header so that a
    failed upload can be matched with the server log line that explains it.
    """
    cid = correlation_id or new_correlation_id()
    payload: dict[str, Any] = {
        "type": type_,
        "title": title,
        "status": status,
        "detail": detail,
        "code": code,
        "correlation_id": cid,
    }
    if instance:
        payload["instance"] = instance
    if extras:
        for key, value in extras.items():
            payload.setdefault(key, value)

    response_headers = dict(headers or {})
    response_headers.setdefault(CORRELATION_HEADER, cid)
    return JSONResponse(
        status_code=status,
        content=payload,
        headers=response_headers,
        media_type=PROBLEM_MEDIA_TYPE,
    )
