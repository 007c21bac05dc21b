"""Decision processor tests: submission, approval and rejection."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ringi.contracts import ApplicationStatus, ApprovalRoute, SubmissionPayload
from ringi.errors import (
    ApplicationCodeNotFound,
    ApplicationNotFound,
    FormDefinitionMissing,
    InvalidState,
    InvalidSubmission,
    RouteNotFound,
    Unauthorized,
    ValidationError,
)
from ringi.workflow import DecisionProcessor, approve_transition


@pytest.mark.asyncio
async def test_single_step_route_approves_after_one_decision(processor, make_payload):
    app = await processor.submit(make_payload(route_id="route-prez"), "U3")
    assert app.status == ApplicationStatus.PENDING_APPROVAL
    assert app.current_level == 1
    assert app.approver_id == "U1"
    assert app.submitted_at is not None

    approved = await processor.approve(app.id, "U1")
    assert approved.status == ApplicationStatus.APPROVED
    assert approved.approved_at is not None
    assert approved.current_level == 2
    assert approved.approver_id is None
    assert approved.rejected_at is None
    assert approved.rejection_reason is None


@pytest.mark.asyncio
async def test_two_step_route_advances_then_approves(processor, make_payload):
    app = await processor.submit(make_payload(), "U3")
    assert (app.current_level, app.approver_id) == (1, "U1")

    advanced = await processor.approve(app, "U1")
    assert advanced.status == ApplicationStatus.PENDING_APPROVAL
    assert advanced.current_level == 2
    assert advanced.approver_id == "U2"
    assert advanced.approved_at is None

    approved = await processor.approve(app.id, "U2")
    assert approved.status == ApplicationStatus.APPROVED


@pytest.mark.asyncio
async def test_rejection_freezes_level_and_is_terminal(processor, make_payload):
    app = await processor.submit(make_payload(), "U3")
    rejected = await processor.reject(app.id, "U1", "missing receipt")

    assert rejected.status == ApplicationStatus.REJECTED
    assert rejected.current_level == 1
    assert rejected.rejection_reason == "missing receipt"
    assert rejected.rejected_at is not None
    assert rejected.approved_at is None

    with pytest.raises(InvalidState):
        await processor.approve(app.id, "U1")
    with pytest.raises(InvalidState):
        await processor.reject(app.id, "U1", "again")


@pytest.mark.asyncio
async def test_wrong_approver_is_unauthorized_and_leaves_state(processor, repo, make_payload):
    app = await processor.submit(make_payload(), "U3")
    before = await repo.get_application(app.id)

    with pytest.raises(Unauthorized):
        await processor.approve(app.id, "U2")
    with pytest.raises(Unauthorized):
        await processor.reject(app.id, "U2", "not mine")

    assert await repo.get_application(app.id) == before


@pytest.mark.asyncio
async def test_blank_reason_fails_before_mutation(processor, repo, make_payload):
    app = await processor.submit(make_payload(), "U3")

    for reason in ("", "   ", None):
        with pytest.raises(ValidationError):
            await processor.reject(app.id, "U1", reason)

    stored = await repo.get_application(app.id)
    assert stored.status == ApplicationStatus.PENDING_APPROVAL
    assert stored.current_level == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("steps", [1, 2, 3, 5])
async def test_completion_after_exactly_n_approvals(processor, repo, make_payload, steps):
    approvers = [f"A{i}" for i in range(1, steps + 1)]
    route = ApprovalRoute.from_approvers(f"route-{steps}", approvers)
    await repo.save_route(route)
    app = await processor.submit(make_payload(route_id=route.id), "U3")

    levels = [app.current_level]
    for i, approver in enumerate(approvers, start=1):
        assert app.status == ApplicationStatus.PENDING_APPROVAL, f"approved after {i - 1} of {steps}"
        app = await processor.approve(app.id, approver)
        levels.append(app.current_level)

    assert app.status == ApplicationStatus.APPROVED
    assert levels == list(range(1, steps + 2))
    with pytest.raises(InvalidState):
        await processor.approve(app.id, approvers[-1])


@pytest.mark.asyncio
async def test_same_approver_on_consecutive_steps(processor, repo, make_payload):
    route = ApprovalRoute.from_approvers("double", ["U1", "U1"])
    await repo.save_route(route)
    app = await processor.submit(make_payload(route_id=route.id), "U3")

    app = await processor.approve(app.id, "U1")
    assert (app.status, app.current_level, app.approver_id) == (
        ApplicationStatus.PENDING_APPROVAL,
        2,
        "U1",
    )
    app = await processor.approve(app.id, "U1")
    assert app.status == ApplicationStatus.APPROVED


@pytest.mark.asyncio
async def test_submit_validates_required_fields(processor, make_payload):
    with pytest.raises(InvalidSubmission):
        await processor.submit(make_payload(), "")
    with pytest.raises(InvalidSubmission):
        await processor.submit(make_payload(code_id=None), "U3")
    with pytest.raises(InvalidSubmission):
        await processor.submit(SubmissionPayload(application_code_id="code-exp"), "U3")
    with pytest.raises(ApplicationCodeNotFound):
        await processor.submit(make_payload(code_id="code-nope"), "U3")
    with pytest.raises(RouteNotFound):
        await processor.submit(make_payload(route_id="route-nope"), "U3")


@pytest.mark.asyncio
async def test_submit_rejects_terminal_status_and_bad_level(processor, make_payload):
    with pytest.raises(InvalidSubmission):
        await processor.submit(make_payload(status=ApplicationStatus.APPROVED), "U3")
    with pytest.raises(InvalidSubmission):
        await processor.submit(make_payload(current_level=3), "U3")
    with pytest.raises(InvalidSubmission):
        await processor.submit(make_payload(status=ApplicationStatus.DRAFT, current_level=1), "U3")


@pytest.mark.asyncio
async def test_submit_overrides_level_and_submitted_at(processor, make_payload):
    submitted_at = datetime(2025, 10, 4, 2, 45, tzinfo=timezone.utc)
    app = await processor.submit(
        make_payload(current_level=2, submitted_at=submitted_at), "U3"
    )
    assert app.current_level == 2
    assert app.approver_id == "U2"
    assert app.submitted_at == submitted_at


@pytest.mark.asyncio
async def test_draft_then_submit_draft(processor, notifier, make_payload):
    draft = await processor.submit(make_payload(status=ApplicationStatus.DRAFT), "U3")
    assert draft.status == ApplicationStatus.DRAFT
    assert draft.current_level == 0
    assert draft.approver_id is None
    assert draft.submitted_at is None
    assert notifier.events() == []

    with pytest.raises(InvalidState):
        await processor.approve(draft.id, "U1")
    with pytest.raises(Unauthorized):
        await processor.submit_draft(draft.id, "U1")

    pending = await processor.submit_draft(draft.id, "U3")
    assert pending.status == ApplicationStatus.PENDING_APPROVAL
    assert (pending.current_level, pending.approver_id) == (1, "U1")
    assert pending.route_steps == ["U1", "U2"]
    assert pending.submitted_at is not None

    with pytest.raises(InvalidState):
        await processor.submit_draft(draft.id, "U3")


@pytest.mark.asyncio
async def test_route_edit_does_not_change_in_flight_application(processor, repo, make_payload):
    app = await processor.submit(make_payload(), "U3")
    route = await repo.get_route("route-two")
    route.steps = route.steps[:1]
    await repo.save_route(route)

    app = await processor.approve(app.id, "U1")
    assert app.status == ApplicationStatus.PENDING_APPROVAL
    assert app.approver_id == "U2"


@pytest.mark.asyncio
async def test_application_without_snapshot_uses_live_route(processor, repo, make_payload):
    app = await processor.submit(make_payload(), "U3")
    legacy = app.model_copy(update={"route_steps": []})
    assert await repo.update_application(
        legacy, ApplicationStatus.PENDING_APPROVAL, 1, "U1"
    )

    app = await processor.approve(app.id, "U1")
    assert app.approver_id == "U2"


@pytest.mark.asyncio
async def test_unknown_application(processor):
    with pytest.raises(ApplicationNotFound):
        await processor.approve("missing", "U1")


@pytest.mark.asyncio
async def test_concurrent_approvals_only_one_wins(processor, make_payload):
    app = await processor.submit(make_payload(route_id="route-prez"), "U3")

    results = await asyncio.gather(
        processor.approve(app.id, "U1"),
        processor.approve(app.id, "U1"),
        return_exceptions=True,
    )
    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidState)
    assert successes[0].current_level == 2


@pytest.mark.asyncio
async def test_stale_decision_loses_compare_and_set(repo, make_payload):
    processor = DecisionProcessor(repo)
    app = await processor.submit(make_payload(), "U3")
    stale = await repo.get_application(app.id)
    await processor.approve(app.id, "U1")

    # a second writer holding the old row must not overwrite the new state
    replay = approve_transition(stale, datetime.now(timezone.utc))
    assert not await repo.update_application(
        replay, stale.status, stale.current_level, stale.approver_id
    )
    stored = await repo.get_application(app.id)
    assert stored.current_level == 2


@pytest.mark.asyncio
async def test_events_published_after_each_transition(processor, notifier, make_payload):
    app = await processor.submit(make_payload(), "U3")
    await processor.approve(app.id, "U1")
    await processor.reject(app.id, "U2", "budget exceeded")

    events = notifier.events()
    assert [e.event_type for e in events] == ["submitted", "advanced", "rejected"]
    assert events[1].approver_id == "U2"
    assert events[2].reason == "budget exceeded"
    assert all(e.application_id == app.id for e in events)


@pytest.mark.asyncio
async def test_notifier_failure_does_not_undo_transition(repo, make_payload):
    class BrokenNotifier:
        async def notify(self, event, topic="applications"):
            raise ConnectionError("broker down")

    processor = DecisionProcessor(repo, notifier=BrokenNotifier())
    app = await processor.submit(make_payload(route_id="route-prez"), "U3")
    approved = await processor.approve(app.id, "U1")
    assert approved.status == ApplicationStatus.APPROVED
    assert (await repo.get_application(app.id)).status == ApplicationStatus.APPROVED


@pytest.mark.asyncio
async def test_updated_at_refreshed_on_every_transition(repo, make_payload):
    ticks = iter(datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=i) for i in range(10))
    processor = DecisionProcessor(repo, clock=lambda: next(ticks))
    app = await processor.submit(make_payload(), "U3")
    first = app.updated_at
    app = await processor.approve(app.id, "U1")
    second = app.updated_at
    app = await processor.approve(app.id, "U2")
    assert first < second < app.updated_at
    assert app.approved_at == app.updated_at


@pytest.mark.asyncio
async def test_form_validation_when_enabled(repo, make_payload):
    processor = DecisionProcessor(repo, validate_forms=True)
    leave = {
        "leaveType": "有給休暇",
        "startDate": "2025-10-26",
        "endDate": "2025-10-26",
        "reason": "私用のため",
    }
    app = await processor.submit(make_payload(code_id="code-lev", form_data=leave), "U3")
    assert app.form_data["leaveType"] == "有給休暇"

    bad = dict(leave, endDate="2025-10-20")
    with pytest.raises(ValidationError):
        await processor.submit(make_payload(code_id="code-lev", form_data=bad), "U3")

    # drafts may be incomplete
    draft = await processor.submit(
        make_payload(code_id="code-lev", form_data={}, status=ApplicationStatus.DRAFT), "U3"
    )
    assert draft.status == ApplicationStatus.DRAFT


@pytest.mark.asyncio
async def test_draft_form_is_validated_on_submission(repo, make_payload):
    processor = DecisionProcessor(repo, validate_forms=True)
    draft = await processor.submit(
        make_payload(code_id="code-lev", form_data={}, status=ApplicationStatus.DRAFT), "U3"
    )

    with pytest.raises(ValidationError):
        await processor.submit_draft(draft.id, "U3")
    assert (await repo.get_application(draft.id)).status == ApplicationStatus.DRAFT

    completed = {
        "leaveType": "有給休暇",
        "startDate": "2025-10-26",
        "endDate": "2025-10-27",
        "reason": "私用のため",
    }
    fixed = (await repo.get_application(draft.id)).model_copy(update={"form_data": completed})
    assert await repo.update_application(fixed, ApplicationStatus.DRAFT, 0, None)

    pending = await processor.submit_draft(draft.id, "U3")
    assert pending.status == ApplicationStatus.PENDING_APPROVAL
    assert pending.form_data["endDate"] == "2025-10-27"


@pytest.mark.asyncio
async def test_rejection_reason_stored_as_given(processor, repo, make_payload):
    app = await processor.submit(make_payload(), "U3")
    rejected = await processor.reject(app.id, "U1", "  領収書がありません\n")
    assert rejected.rejection_reason == "  領収書がありません\n"
    assert (await repo.get_application(app.id)).rejection_reason == "  領収書がありません\n"


@pytest.mark.asyncio
async def test_form_validation_requires_definition(repo, make_payload):
    from ringi.contracts import ApplicationCode

    await repo.save_application_code(ApplicationCode(id="code-xyz", code="XYZ", name="その他"))
    processor = DecisionProcessor(repo, validate_forms=True)
    with pytest.raises(FormDefinitionMissing):
        await processor.submit(make_payload(code_id="code-xyz"), "U3")
