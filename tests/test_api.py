"""
HTTP surface tests: the FastAPI app with the service layer wired to
in-memory fakes through dependency overrides.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from devreview.api.deps import get_dispatcher, get_object_storage, get_review_service
from devreview.core.auth import ANONYMOUS, ResolvedSession, get_resolved_session
from devreview.core.database import get_session
from devreview.main import create_app
from devreview.services.notifications import NotificationDispatcher
from devreview.services.review import ReviewService
from devreview.services.store import SqlSubmissionStore
from devreview_shared.schemas.common import Role

from .fakes import FakeTransport, add_user, jpeg_bytes, make_submission


class Harness:
    """Builds an app whose caller identity can be switched per request."""

    def __init__(self, store, storage, transport, publisher, db_session):
        self.caller = ANONYMOUS
        self.transport = transport
        self.app = create_app(lookup_role=AsyncMock(return_value=None))

        async def _resolved():
            return self.caller

        async def _session():
            yield db_session

        self.app.dependency_overrides[get_resolved_session] = _resolved
        self.app.dependency_overrides[get_session] = _session
        self.app.dependency_overrides[get_review_service] = lambda: ReviewService(
            store, storage, publish=publisher
        )
        self.app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(self.transport)

    def login_as(self, role, user_id=None):
        self.caller = ResolvedSession(authenticated=True, user_id=user_id or uuid.uuid4(), role=role)
        return self.caller


@pytest.fixture
def harness(store, storage, transport, publisher, db_session):
    return Harness(store, storage, transport, publisher, db_session)


@pytest.fixture
async def client(harness):
    async with AsyncClient(transport=ASGITransport(app=harness.app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def pending(store):
    row = make_submission()
    store.rows[row.id] = row
    return row


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client):
    mock_redis = AsyncMock()
    with patch("devreview.main.get_redis", return_value=mock_redis):
        response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


@pytest.mark.asyncio
async def test_ready_check_degraded(client):
    mock_redis = AsyncMock()
    mock_redis.ping = AsyncMock(side_effect=ConnectionError("redis down"))
    with patch("devreview.main.get_redis", return_value=mock_redis):
        response = await client.get("/ready")
    assert response.status_code == 503
    assert response.json()["checks"]["redis"] == "unavailable"


@pytest.mark.asyncio
async def test_api_root(client):
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    assert response.json()["api"] == "v1"


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------

class TestSubmissions:
    def _form(self):
        data = {
            "full_name": "Jane Doe",
            "phone_number": "+1 555 0100",
            "location": "Berlin",
            "hobbies": "climbing",
        }
        files = {
            "profile_picture": ("me.jpg", jpeg_bytes(), "image/jpeg"),
            "source_code": ("code.zip", b"PK\x03\x04", "application/zip"),
        }
        return data, files

    @pytest.mark.asyncio
    async def test_submit_then_duplicate(self, harness, client, db_session, publisher):
        user = await add_user(db_session, "developer", email="jane@x.io")
        harness.login_as(Role.DEVELOPER, user.id)

        data, files = self._form()
        resp = await client.post("/api/v1/submissions/", data=data, files=files)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["email"] == "jane@x.io"
        assert len(publisher.events) == 1

        data, files = self._form()
        resp = await client.post("/api/v1/submissions/", data=data, files=files)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_SUBMISSION"

        mine = await client.get("/api/v1/submissions/mine")
        assert mine.status_code == 200
        assert mine.json()["id"] == body["id"]

    @pytest.mark.asyncio
    async def test_blank_profile_field(self, harness, client, db_session):
        user = await add_user(db_session, "developer")
        harness.login_as(Role.DEVELOPER, user.id)
        data, files = self._form()
        data["location"] = ""
        resp = await client.post("/api/v1/submissions/", data=data, files=files)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_evaluator_cannot_submit(self, harness, client):
        harness.login_as(Role.EVALUATOR)
        data, files = self._form()
        resp = await client.post("/api/v1/submissions/", data=data, files=files)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_mine_before_submitting(self, harness, client):
        harness.login_as(Role.DEVELOPER)
        resp = await client.get("/api/v1/submissions/mine")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list_requires_evaluator(self, harness, client, pending):
        resp = await client.get("/api/v1/submissions/")
        assert resp.status_code == 401
        harness.login_as(Role.DEVELOPER)
        resp = await client.get("/api/v1/submissions/")
        assert resp.status_code == 403
        harness.login_as(Role.EVALUATOR)
        resp = await client.get("/api/v1/submissions/", params={"status": "pending"})
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json()] == [str(pending.id)]

    @pytest.mark.asyncio
    async def test_detail(self, harness, client, pending):
        harness.login_as(Role.EVALUATOR)
        assert (await client.get(f"/api/v1/submissions/{pending.id}")).status_code == 200
        assert (await client.get(f"/api/v1/submissions/{uuid.uuid4()}")).status_code == 404


class TestDecision:
    @pytest.mark.asyncio
    async def test_decide_then_conflict(self, harness, client, pending):
        evaluator = harness.login_as(Role.EVALUATOR)
        url = f"/api/v1/submissions/{pending.id}/decision"

        resp = await client.post(url, json={"decision": "accepted", "feedback": "Great work"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "accepted"
        assert resp.json()["decided_by"] == str(evaluator.user_id)

        resp = await client.post(url, json={"decision": "rejected", "feedback": "Nope"})
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "ALREADY_DECIDED"
        assert error["current_status"] == "accepted"

    @pytest.mark.asyncio
    async def test_blank_feedback(self, harness, client, pending, store):
        harness.login_as(Role.EVALUATOR)
        resp = await client.post(
            f"/api/v1/submissions/{pending.id}/decision",
            json={"decision": "rejected", "feedback": "   "},
        )
        assert resp.status_code == 422
        assert store.decide_calls == 0

    @pytest.mark.asyncio
    async def test_developer_cannot_decide(self, harness, client, pending):
        harness.login_as(Role.DEVELOPER)
        resp = await client.post(
            f"/api/v1/submissions/{pending.id}/decision",
            json={"decision": "accepted", "feedback": "self-approved"},
        )
        assert resp.status_code == 403
        assert pending.status == "pending"



class TestDecisionOnSqlStore:
    """Decision endpoint over the real SQL store and its conditional update."""

    @pytest.fixture
    def sql_harness(self, harness, storage):
        del harness.app.dependency_overrides[get_review_service]
        harness.app.dependency_overrides[get_object_storage] = lambda: storage
        return harness

    @pytest.fixture
    async def stored(self, db_session):
        dev = await add_user(db_session, "developer")
        row = await SqlSubmissionStore(db_session).insert(make_submission(dev.id))
        return row.id

    @pytest.mark.asyncio
    async def test_second_evaluator_gets_409(self, sql_harness, client, stored):
        url = f"/api/v1/submissions/{stored}/decision"
        with patch("devreview.core.events.get_redis", return_value=AsyncMock()):
            first = sql_harness.login_as(Role.EVALUATOR)
            resp = await client.post(url, json={"decision": "accepted", "feedback": "Great work"})
            assert resp.status_code == 200
            assert resp.json()["decided_by"] == str(first.user_id)

            sql_harness.login_as(Role.EVALUATOR)
            resp = await client.post(url, json={"decision": "rejected", "feedback": "Not a fit"})
            assert resp.status_code == 409
            assert resp.json()["error"]["code"] == "ALREADY_DECIDED"
            assert resp.json()["error"]["current_status"] == "accepted"

            resp = await client.get(f"/api/v1/submissions/{stored}")
        assert resp.json()["status"] == "accepted"
        assert resp.json()["feedback"] == "Great work"

    @pytest.mark.asyncio
    async def test_unknown_id_is_404(self, sql_harness, client):
        sql_harness.login_as(Role.EVALUATOR)
        resp = await client.post(
            f"/api/v1/submissions/{uuid.uuid4()}/decision",
            json={"decision": "accepted", "feedback": "ok"},
        )
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Notify
# ---------------------------------------------------------------------------

class TestNotify:
    def _body(self, submission_id, action="accepted"):
        return {"submissionId": str(submission_id), "action": action, "feedback": "Great work"}

    @pytest.mark.asyncio
    async def test_requires_session(self, client, pending):
        resp = await client.post("/api/notify", json=self._body(pending.id))
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_requires_evaluator(self, harness, client, pending):
        harness.login_as(Role.DEVELOPER)
        resp = await client.post("/api/notify", json=self._body(pending.id))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_submission(self, harness, client):
        harness.login_as(Role.EVALUATOR)
        resp = await client.post("/api/notify", json=self._body(uuid.uuid4()))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_sends_email(self, harness, client, pending, transport):
        harness.login_as(Role.EVALUATOR)
        resp = await client.post("/api/notify", json=self._body(pending.id))
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert [to for to, _, _ in transport.sent] == [pending.email]

    @pytest.mark.asyncio
    async def test_send_failure_is_500(self, harness, client, pending):
        harness.login_as(Role.EVALUATOR)
        harness.transport = FakeTransport(error=RuntimeError("smtp down"))
        resp = await client.post("/api/notify", json=self._body(pending.id, "rejected"))
        assert resp.status_code == 500
        assert "error" in resp.json()
        assert pending.status == "pending"
