import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from cookshare.infra.idempotency import IdempotencyClaim, claim_idempotency_key


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis_client(fake_redis):
    with patch("cookshare.infra.idempotency.get_redis", return_value=fake_redis):
        yield


def make_request(key=None, body=b'{"email": "a@example.com"}', path="/api/recipes/r1/collaborators"):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": key} if key else {}
    req.method = "POST"
    req.url.path = path
    req.body = AsyncMock(return_value=body)
    return req


@pytest.mark.asyncio
async def test_missing_or_oversized_header():
    with pytest.raises(HTTPException) as exc:
        await claim_idempotency_key(make_request(), user_id="u1", scope="invite")
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await claim_idempotency_key(make_request("k" * 201), user_id="u1", scope="invite")
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_claim_complete_replay(fake_redis):
    key = str(uuid.uuid4())
    req = make_request(key)

    claim = await claim_idempotency_key(req, user_id="u1", scope="invite")
    assert isinstance(claim, IdempotencyClaim)
    assert claim.redis_key == f"cookshare:idemp:u1:invite:{key}"
    assert json.loads(await fake_redis.get(claim.redis_key))["state"] == "processing"

    # Duplicate while the first attempt is in flight
    with pytest.raises(HTTPException) as exc:
        await claim_idempotency_key(req, user_id="u1", scope="invite")
    assert exc.value.status_code == 409
    assert "still processing" in exc.value.detail

    await claim.complete(201, {"status": "pending"})
    record = json.loads(await fake_redis.get(claim.redis_key))
    assert record["state"] == "done"
    assert record["status"] == 201
    assert await fake_redis.ttl(claim.redis_key) > 60

    replay = await claim_idempotency_key(req, user_id="u1", scope="invite")
    assert isinstance(replay, JSONResponse)
    assert replay.status_code == 201
    assert json.loads(replay.body) == {"status": "pending"}


@pytest.mark.asyncio
async def test_keys_are_scoped_per_user():
    key = str(uuid.uuid4())
    a = await claim_idempotency_key(make_request(key), user_id="u1", scope="invite")
    b = await claim_idempotency_key(make_request(key), user_id="u2", scope="invite")
    assert isinstance(a, IdempotencyClaim) and isinstance(b, IdempotencyClaim)
    assert a.redis_key != b.redis_key


@pytest.mark.asyncio
async def test_payload_mismatch_conflicts():
    key = str(uuid.uuid4())
    claim = await claim_idempotency_key(make_request(key), user_id="u1", scope="invite")
    await claim.complete(201, {})

    with pytest.raises(HTTPException) as exc:
        await claim_idempotency_key(
            make_request(key, body=b'{"email": "b@example.com"}'), user_id="u1", scope="invite",
        )
    assert exc.value.status_code == 409
    assert "different request payload" in exc.value.detail


@pytest.mark.asyncio
async def test_equivalent_json_bodies_replay():
    key = str(uuid.uuid4())
    claim = await claim_idempotency_key(
        make_request(key, body=b'{"role": "viewer", "email": "a@example.com"}'), user_id="u1", scope="invite",
    )
    await claim.complete(201, {"role": "viewer"})

    replay = await claim_idempotency_key(
        make_request(key, body=b'{"email":"a@example.com","role":"viewer"}'), user_id="u1", scope="invite",
    )
    assert isinstance(replay, JSONResponse)


@pytest.mark.asyncio
async def test_release_allows_retry():
    key = str(uuid.uuid4())
    claim = await claim_idempotency_key(make_request(key), user_id="u1", scope="invite")
    await claim.release()
    again = await claim_idempotency_key(make_request(key), user_id="u1", scope="invite")
    assert isinstance(again, IdempotencyClaim)
