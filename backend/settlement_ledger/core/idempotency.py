"""``Idempotency-Key`` handling for endpoints that record money movements.

A client retrying ``record-payment`` after a timeout must not record the
payment twice. The first request with a key claims it; a later request with
the same key gets the stored response back with ``Idempotency-Replayed: true``,
or 409 while the first request is still running. Reusing a key for a
different request (another path or body) is rejected with 422. A request that
fails releases its key so the client can retry.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from settlement_ledger.repositories.idempotency_repository import IdempotencyRepository

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAYED_HEADER = "Idempotency-Replayed"


@dataclass
class IdempotencyResult:
    """A claimed key whose response still has to be recorded."""

    key: str
    method: str
    path: str


def request_fingerprint(method: str, path: str, body: dict[str, Any] | None) -> str:
    canonical = json.dumps(body or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(f"{method} {path}\n{canonical}".encode()).hexdigest()


def check_idempotency(
    request: Request, db: Session, body: dict[str, Any] | None = None
) -> JSONResponse | IdempotencyResult | None:
    """Resolve the request's ``Idempotency-Key`` header.

    Returns:
        - ``None`` when the header is absent.
        - A ``JSONResponse`` replaying the stored response, or a 422 when the
          key was first used for a different request.
        - A 409 ``JSONResponse`` when the key was claimed by a request that
          has not finished yet.
        - An ``IdempotencyResult`` when this request claimed the key. The
          endpoint runs and then calls ``record_idempotency_response``, or
          ``release_idempotency_key`` if it fails.
    """
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if not key:
        return None

    method, path = request.method, request.url.path
    fingerprint = request_fingerprint(method, path, body)
    record, created = IdempotencyRepository(db).claim(key, method, path, fingerprint)

    if record.request_hash is not None and record.request_hash != fingerprint:
        return JSONResponse(
            status_code=422,
            content={"detail": f"{IDEMPOTENCY_HEADER} {key!r} was already used for a different request"},
        )

    if record.response_status is not None:
        response = JSONResponse(
            content=record.response_body,
            status_code=int(record.response_status),
        )
        response.headers[REPLAYED_HEADER] = "true"
        return response

    if not created:
        return JSONResponse(
            status_code=409,
            content={"detail": f"A request with {IDEMPOTENCY_HEADER} {key!r} is still in progress"},
        )

    return IdempotencyResult(key=key, method=method, path=path)


def record_idempotency_response(
    db: Session,
    key: str,
    status: int,
    body: dict[str, Any],
) -> None:
    """Store the response so retries with the same key replay it."""
    repo = IdempotencyRepository(db)
    record = repo.get_by_key(key)
    if record is not None:
        repo.update_response(record, status, body)


def release_idempotency_key(db: Session, claim: IdempotencyResult | None) -> None:
    """Drop the claim of a request that failed, so a retry runs again."""
    if claim is not None:
        IdempotencyRepository(db).release(claim.key)
