"""Read-side views: partitions, search, sort and tab counts."""

from datetime import datetime, timedelta, timezone

import pytest

from ringi.contracts import ApplicationCode, ApplicationStatus, ApplicationWithDetails, User
from ringi.errors import ApplicationNotFound, ValidationError
from ringi.queries import (
    filter_by_search,
    filter_completed,
    filter_pending,
    filter_submitted,
    sort_applications,
)


async def _populate(processor, make_payload):
    """U3 files four applications, U2 files one, in a spread of states."""
    pending_u1 = await processor.submit(make_payload(), "U3")
    pending_u2 = await processor.submit(make_payload(code_id="code-lev"), "U3")
    await processor.approve(pending_u2.id, "U1")
    approved = await processor.submit(make_payload(route_id="route-prez"), "U3")
    await processor.approve(approved.id, "U1")
    draft = await processor.submit(make_payload(status=ApplicationStatus.DRAFT), "U3")
    rejected = await processor.submit(make_payload(code_id="code-trp"), "U2")
    await processor.reject(rejected.id, "U1", "wrong account")
    return {
        "pending_u1": pending_u1.id,
        "pending_u2": pending_u2.id,
        "approved": approved.id,
        "draft": draft.id,
        "rejected": rejected.id,
    }


@pytest.mark.asyncio
async def test_views_partition_by_role(processor, queries, make_payload):
    ids = await _populate(processor, make_payload)

    pending_u1 = {a.id for a in await queries.pending_for_approver("U1")}
    pending_u2 = {a.id for a in await queries.pending_for_approver("U2")}
    submitted_u3 = {a.id for a in await queries.submitted_by("U3")}
    completed = {a.id for a in await queries.completed()}

    assert pending_u1 == {ids["pending_u1"]}
    assert pending_u2 == {ids["pending_u2"]}
    assert submitted_u3 == {ids["pending_u1"], ids["pending_u2"], ids["approved"], ids["draft"]}
    assert completed == {ids["approved"], ids["rejected"]}


@pytest.mark.asyncio
async def test_completed_is_not_scoped_to_a_user(processor, queries, make_payload):
    await _populate(processor, make_payload)
    assert (await queries.tab_counts("U1"))["completed"] == 2
    assert (await queries.tab_counts("nobody"))["completed"] == 2


@pytest.mark.asyncio
async def test_pending_view_matches_predicate(processor, repo, queries, make_payload):
    await _populate(processor, make_payload)
    everything = await repo.list_applications()
    for user_id in ("U1", "U2", "U3"):
        expected = [
            a.id
            for a in everything
            if a.status == ApplicationStatus.PENDING_APPROVAL and a.approver_id == user_id
        ]
        assert [a.id for a in await queries.pending_for_approver(user_id)] == expected


@pytest.mark.asyncio
async def test_views_resolve_details(processor, queries, make_payload):
    ids = await _populate(processor, make_payload)
    item = await queries.get_application(ids["pending_u2"])
    assert isinstance(item, ApplicationWithDetails)
    assert item.applicant.name == "佐々木 大樹"
    assert item.application_code.code == "LEV"
    assert item.approval_route.id == "route-two"
    assert item.current_level == 2

    with pytest.raises(ApplicationNotFound):
        await queries.get_application("missing")


@pytest.mark.asyncio
async def test_views_do_not_mutate(processor, repo, queries, make_payload):
    await _populate(processor, make_payload)
    before = await repo.list_applications()
    for _ in range(3):
        await queries.list_view("pending", "U1")
        await queries.list_view("completed", "U1", search="approved", sort_key="applicant")
        await queries.tab_counts("U3")
    assert await repo.list_applications() == before


@pytest.mark.asyncio
async def test_tab_counts(processor, queries, make_payload):
    await _populate(processor, make_payload)
    assert await queries.tab_counts("U3") == {"pending": 0, "submitted": 4, "completed": 2}
    assert await queries.tab_counts("U1") == {"pending": 1, "submitted": 0, "completed": 2}


@pytest.mark.asyncio
async def test_list_view_search_and_unknown_tab(processor, queries, make_payload):
    ids = await _populate(processor, make_payload)

    by_status = await queries.list_view("submitted", "U3", search="DRAFT")
    assert [a.id for a in by_status] == [ids["draft"]]

    by_type = await queries.list_view("submitted", "U3", search="休暇")
    assert [a.id for a in by_type] == [ids["pending_u2"]]

    by_applicant = await queries.list_view("completed", "U1", search="高橋")
    assert [a.id for a in by_applicant] == [ids["rejected"]]

    with pytest.raises(ValidationError):
        await queries.list_view("archived", "U1")


def _detail(app_id, name, updated_minutes=None, status=ApplicationStatus.PENDING_APPROVAL):
    base = datetime(2025, 10, 1, tzinfo=timezone.utc)
    return ApplicationWithDetails(
        id=app_id,
        applicant_id=f"user-{name}",
        application_code_id="code-exp",
        approval_route_id="route-two",
        status=status,
        approver_id="U1",
        created_at=base,
        updated_at=base + timedelta(minutes=updated_minutes) if updated_minutes is not None else None,
        applicant=User(id=f"user-{name}", name=name),
    )


def test_sort_by_updated_at_falls_back_to_created_at():
    apps = [_detail("a", "x", 10), _detail("b", "y"), _detail("c", "z", 5)]
    assert [a.id for a in sort_applications(apps)] == ["a", "c", "b"]
    assert [a.id for a in sort_applications(apps, descending=False)] == ["b", "c", "a"]


def test_sort_is_stable_for_equal_keys():
    apps = [_detail("a", "same", 1), _detail("b", "same", 1), _detail("c", "same", 1)]
    assert [a.id for a in sort_applications(apps, "applicant", descending=False)] == ["a", "b", "c"]
    assert [a.id for a in sort_applications(apps, "updatedAt")] == ["a", "b", "c"]


def test_sort_by_applicant_and_field_alias():
    apps = [_detail("a", "bob", 1), _detail("b", "Alice", 2), _detail("c", "carol", 3)]
    assert [a.id for a in sort_applications(apps, "applicant", descending=False)] == ["b", "a", "c"]
    assert [a.id for a in sort_applications(apps, "id", descending=True)] == ["c", "b", "a"]
    assert [a.id for a in sort_applications(apps, "applicantId", descending=False)] == ["b", "a", "c"]

    with pytest.raises(ValidationError):
        sort_applications(apps, "colour")


def test_pure_filters():
    apps = [
        _detail("a", "x"),
        _detail("b", "y", status=ApplicationStatus.APPROVED),
        _detail("c", "z", status=ApplicationStatus.REJECTED),
    ]
    assert [a.id for a in filter_pending(apps, "U1")] == ["a"]
    assert filter_pending(apps, "U2") == []
    assert [a.id for a in filter_submitted(apps, "user-y")] == ["b"]
    assert [a.id for a in filter_completed(apps)] == ["b", "c"]
    assert [a.id for a in filter_by_search(apps, "")] == ["a", "b", "c"]
    assert [a.id for a in filter_by_search(apps, "REJ")] == ["c"]


def test_sort_by_structured_fields():
    apps = [_detail("a", "x"), _detail("b", "y"), _detail("c", "z"), _detail("d", "w")]
    apps[0].form_data = {"amount": 300}
    apps[1].form_data = {"amount": 100}
    apps[2].form_data = 5
    apps[3].form_data = None
    assert [a.id for a in sort_applications(apps, "formData", descending=False)] == ["c", "d", "b", "a"]

    apps[0].application_code = ApplicationCode(id="code-lev", code="LEV", name="休暇申請")
    apps[1].application_code = ApplicationCode(id="code-exp", code="EXP", name="経費精算")
    ordered = sort_applications(apps, "applicationCode", descending=False)
    assert [a.id for a in ordered][-2:] == ["b", "a"]


@pytest.mark.asyncio
async def test_list_view_sorts_by_any_projected_field(processor, queries, make_payload):
    await _populate(processor, make_payload)
    for key in ("formData", "applicationCode", "approvalRoute", "routeSteps", "currentLevel"):
        items = await queries.list_view("submitted", "U3", sort_key=key)
        assert len(items) == 4
