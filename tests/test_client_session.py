"""Tests for the evaluator review session (decide, notify, resend)."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import httpx
import pytest

from devreview_client.api import ReviewApiClient
from devreview_client.errors import AlreadyDecided, NotificationFailed, UpstreamFailed, ValidationFailed
from devreview_client.session import DecisionOutcome, ReviewSession
from devreview_shared.schemas.common import SubmissionStatus
from devreview_shared.schemas.submissions import SubmissionEvent, SubmissionRead


def _read(**overrides) -> SubmissionRead:
    data = dict(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        full_name="Jane Doe",
        email="jane@x.io",
        phone_number="1",
        location="Berlin",
        hobbies="chess",
        profile_picture_url="https://cdn.test/p.jpg",
        source_code_url="https://cdn.test/s.zip",
        status="pending",
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return SubmissionRead(**data)


class FakeApi:
    def __init__(self, rows):
        self.rows = {r.id: r for r in rows}
        self.decide_error = None
        self.notify_errors: list[Exception] = []
        self.notified = []
        self.list_calls = 0
        self.decide_calls = 0
        self.observed_updating = None
        self.session = None

    async def list_submissions(self, status=None, search=None):
        self.list_calls += 1
        return list(self.rows.values())

    async def get_submission(self, submission_id):
        return self.rows[uuid.UUID(str(submission_id))]

    async def decide(self, submission_id, decision, feedback):
        self.decide_calls += 1
        self.observed_updating = self.session.is_updating(submission_id)
        if self.decide_error:
            raise self.decide_error
        key = uuid.UUID(str(submission_id))
        self.rows[key] = SubmissionRead.model_validate(
            {**self.rows[key].model_dump(), "status": decision.value, "feedback": feedback}
        )
        return self.rows[key]

    async def notify(self, submission_id, action, feedback):
        if self.notify_errors:
            raise self.notify_errors.pop(0)
        self.notified.append((submission_id, action, feedback))


@pytest.fixture
def row():
    return _read()


@pytest.fixture
async def session(row):
    api = FakeApi([row])
    s = ReviewSession(api)
    api.session = s
    await s.refresh()
    return s


@pytest.mark.asyncio
async def test_decide_and_notify(session, row):
    result = await session.decide(row.id, "accepted", "  Great work ")

    assert result.outcome == DecisionOutcome.NOTIFIED
    assert result.submission.status.value == "accepted"
    assert session._api.observed_updating is True
    assert session.is_updating(row.id) is False
    assert session.view.get(row.id).submission.feedback == "Great work"
    assert session._api.notified == [(row.id, result.notification.decision, "Great work")]


@pytest.mark.asyncio
async def test_notify_failure_keeps_decision_and_offers_resend(session, row):
    session._api.notify_errors = [NotificationFailed("Failed to send email", status=500)]

    result = await session.decide(row.id, "rejected", "Not a fit")
    assert result.outcome == DecisionOutcome.NOTIFY_FAILED
    assert result.error == "Failed to send email"
    assert session.view.get(row.id).submission.status.value == "rejected"
    assert session.is_updating(row.id) is False

    resent = await session.resend_notification(result.notification)
    assert resent.outcome == DecisionOutcome.NOTIFIED
    assert session._api.decide_calls == 1
    assert session.is_updating(row.id) is False


@pytest.mark.asyncio
async def test_already_decided_refetches_and_raises(session, row):
    session._api.decide_error = AlreadyDecided("This submission has already been decided.", status=409)
    lists_before = session._api.list_calls

    with pytest.raises(AlreadyDecided):
        await session.decide(row.id, "accepted", "ok")

    assert session._api.list_calls == lists_before + 1
    assert session.is_updating(row.id) is False
    assert session._api.notified == []


@pytest.mark.asyncio
async def test_decide_failure_clears_updating(session, row):
    session._api.decide_error = UpstreamFailed("Saving the decision timed out", retryable=True)
    with pytest.raises(UpstreamFailed) as exc_info:
        await session.decide(row.id, "accepted", "ok")
    assert exc_info.value.retryable is True
    assert session.is_updating(row.id) is False


@pytest.mark.asyncio
@pytest.mark.parametrize("feedback", ["", "   "])
async def test_blank_feedback_never_reaches_the_server(session, row, feedback):
    with pytest.raises(ValidationFailed):
        await session.decide(row.id, "accepted", feedback)
    assert session._api.decide_calls == 0


@pytest.mark.asyncio
async def test_invalid_decision(session, row):
    with pytest.raises(ValidationFailed):
        await session.decide(row.id, "pending", "ok")
    assert session._api.decide_calls == 0


@pytest.mark.asyncio
async def test_on_change_sees_every_view(row):
    seen = []
    api = FakeApi([row])
    s = ReviewSession(api, on_change=seen.append)
    api.session = s
    await s.refresh()
    await s.decide(row.id, "accepted", "ok")
    flags = [v.get(row.id).is_updating for v in seen]
    assert flags[0] is False
    assert True in flags
    assert flags[-1] is False


def _event(submission: SubmissionRead, event_type: str = "submission.updated") -> SubmissionEvent:
    return SubmissionEvent(
        type=event_type,
        submission_id=submission.id,
        user_id=submission.user_id,
        payload=submission.model_dump(mode="json"),
        timestamp=datetime.now(timezone.utc),
    )


class TestNotifyRejectedAfterDecision:
    """The decision is committed before notify; a notify 4xx must not hide that."""

    def _api(self, row: SubmissionRead, notify_responses: list[httpx.Response]):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            if request.url.path == "/api/v1/submissions/":
                return httpx.Response(200, json=[row.model_dump(mode="json")])
            if request.url.path.endswith("/decision"):
                decided = {**row.model_dump(mode="json"), "status": "rejected", "feedback": "Not a fit"}
                return httpx.Response(200, json=decided)
            if request.url.path == "/api/notify":
                return notify_responses.pop(0)
            return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "x"}})

        return ReviewApiClient("http://test", token="jwt", transport=httpx.MockTransport(handler)), calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(401, json={"error": {"code": "UNAUTHENTICATED", "message": "Authentication required."}}),
            httpx.Response(404, json={"error": "Submission not found"}),
        ],
    )
    async def test_decision_saved_and_resend_offered(self, row, response):
        api, calls = self._api(row, [response, httpx.Response(200, json={"success": True})])
        s = ReviewSession(api)
        await s.refresh()

        result = await s.decide(row.id, "rejected", "Not a fit")
        assert result.outcome == DecisionOutcome.NOTIFY_FAILED
        assert result.submission.status.value == "rejected"
        assert result.notification.feedback == "Not a fit"
        assert s.view.get(row.id).submission.status.value == "rejected"
        assert s.is_updating(row.id) is False

        resent = await s.resend_notification(result.notification)
        assert resent.outcome == DecisionOutcome.NOTIFIED
        assert calls.count(f"/api/v1/submissions/{row.id}/decision") == 1
        await api.close()


class TestLiveEventsRespectFilters:
    @pytest.mark.asyncio
    async def test_decided_row_leaves_pending_view(self, row):
        s = ReviewSession(FakeApi([row]), status="pending")
        await s.refresh()

        await s.handle_event(_event(row.model_copy(update={"status": SubmissionStatus.ACCEPTED})))
        assert len(s.view) == 0

    @pytest.mark.asyncio
    async def test_non_matching_new_row_is_not_prepended(self, row):
        s = ReviewSession(FakeApi([row]), status="pending", search="JANE")
        await s.refresh()

        other = _read(full_name="Zed", email="zed@x.io", location="Oslo")
        await s.handle_event(_event(other, "submission.created"))
        match = _read(full_name="Mary Jane", email="mj@x.io")
        await s.handle_event(_event(match, "submission.created"))

        assert [e.full_name for e in s.view.submissions] == ["Mary Jane", "Jane Doe"]

    @pytest.mark.asyncio
    async def test_own_decision_respects_filter(self, row):
        api = FakeApi([row])
        s = ReviewSession(api, status="pending")
        api.session = s
        await s.refresh()

        result = await s.decide(row.id, "accepted", "Great work")
        assert result.outcome == DecisionOutcome.NOTIFIED
        assert s.view.get(row.id) is None
