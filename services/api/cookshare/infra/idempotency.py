"""Idempotency-Key handling for non-repeatable POSTs.

A key is claimed in Redis before the handler runs. The finished response is
stored under the same key and replayed on retries; a retry that arrives
while the first attempt is still running, or that carries a different body,
is rejected with 409.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from cookshare.infra.redis_client import get_redis

logger = logging.getLogger("cookshare.idempotency")

IDEMPOTENCY_HEADER = "Idempotency-Key"
MAX_KEY_LEN = 200
REPLAY_TTL_SEC = 24 * 60 * 60
CLAIM_TTL_SEC = 60

IN_FLIGHT_DETAIL = "Request with this Idempotency-Key is still processing. Retry shortly."


def _body_fingerprint(method: str, path: str, body: bytes) -> str:
    # Equivalent JSON bodies (key order, whitespace) hash the same
    try:
        canonical = json.dumps(json.loads(body), sort_keys=True, separators=(",", ":")).encode("utf-8")
    except ValueError:
        canonical = body or b""
    return hashlib.sha256(f"{method} {path}\n".encode("utf-8") + canonical).hexdigest()


def redis_key_for(user_id: str, scope: str, idem_key: str) -> str:
    return f"cookshare:idemp:{user_id}:{scope}:{idem_key}"


@dataclass
class IdempotencyClaim:
    """A key this request owns until it completes or releases it."""

    redis_key: str
    fingerprint: str

    async def complete(self, status: int, body: dict) -> None:
        r = await get_redis()
        record = {
            "state": "done",
            "status": int(status),
            "body": body,
            "fingerprint": self.fingerprint,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
        await r.set(self.redis_key, json.dumps(record), ex=REPLAY_TTL_SEC)

    async def release(self) -> None:
        """Drop the claim after a failed attempt so the client may retry."""
        r = await get_redis()
        await r.delete(self.redis_key)


async def claim_idempotency_key(request: Request, *, user_id: str, scope: str) -> Union[IdempotencyClaim, JSONResponse]:
    """Claim the request's Idempotency-Key, or replay the stored response."""
    idem_key = (request.headers.get(IDEMPOTENCY_HEADER) or "").strip()
    if not idem_key:
        raise HTTPException(status_code=400, detail=f"Missing {IDEMPOTENCY_HEADER} header")
    if len(idem_key) > MAX_KEY_LEN:
        raise HTTPException(status_code=400, detail=f"{IDEMPOTENCY_HEADER} is too long")

    fingerprint = _body_fingerprint(request.method, request.url.path, await request.body())
    claim = IdempotencyClaim(redis_key_for(user_id, scope, idem_key), fingerprint)
    r = await get_redis()

    pending = json.dumps({"state": "processing", "fingerprint": fingerprint})
    if await r.set(claim.redis_key, pending, ex=CLAIM_TTL_SEC, nx=True):
        return claim

    raw = await r.get(claim.redis_key)
    if raw is None:
        # Claim expired between SET NX and GET; let the client retry
        raise HTTPException(status_code=409, detail=IN_FLIGHT_DETAIL)

    record = json.loads(raw)
    if record.get("fingerprint") != fingerprint:
        raise HTTPException(status_code=409, detail="Idempotency-Key reused with different request payload")
    if record.get("state") != "done":
        raise HTTPException(status_code=409, detail=IN_FLIGHT_DETAIL)

    logger.info(f"Replaying stored response for {claim.redis_key}")
    return JSONResponse(content=record.get("body"), status_code=record["status"])
