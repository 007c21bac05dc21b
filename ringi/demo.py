"""Demo dataset for local use and tests."""

from __future__ import annotations

from datetime import datetime, timezone

from .codes import seed_application_codes
from .config import PRESIDENTIAL_ROUTE_NAME
from .contracts import Application, ApplicationStatus, ApprovalRoute, User
from .persistence import WorkflowRepository


def _at(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


DEMO_USERS = [
    User(id="user-001", name="田中 翔", department="営業部", title="マネージャー",
         email="sho.tanaka@example.com"),
    User(id="user-002", name="高橋 美咲", department="営業部", title="シニアセールス",
         email="misaki.takahashi@example.com"),
    User(id="user-003", name="佐々木 大樹", department="製造部", title="工場長",
         email="daiki.sasaki@example.com"),
]


def demo_routes() -> list[ApprovalRoute]:
    return [
        ApprovalRoute.from_approvers(
            "営業経費申請ルート", ["user-001", "user-002"],
            id="route-001", created_at=_at("2024-01-05T00:00:00"),
        ),
        ApprovalRoute.from_approvers(
            "製造部 稟議ルート", ["user-003", "user-001"],
            id="route-002", created_at=_at("2024-03-12T00:00:00"),
        ),
        ApprovalRoute.from_approvers(
            PRESIDENTIAL_ROUTE_NAME, ["user-001"],
            id="route-prez", created_at=_at("2024-01-01T00:00:00"),
        ),
    ]


def demo_applications() -> list[Application]:
    return [
        Application(
            id="app-001",
            applicant_id="user-002",
            application_code_id="code-exp",
            approval_route_id="route-001",
            form_data={
                "purpose": "得意先訪問の交通費精算",
                "amount": 12840,
                "notes": "10/3 東京メトロ利用",
            },
            status=ApplicationStatus.PENDING_APPROVAL,
            current_level=1,
            approver_id="user-001",
            route_steps=["user-001", "user-002"],
            submitted_at=_at("2025-10-04T02:45:00"),
            created_at=_at("2025-10-04T02:45:00"),
        ),
        Application(
            id="app-002",
            applicant_id="user-003",
            application_code_id="code-apl",
            approval_route_id="route-002",
            form_data={
                "title": "新型オンデマンド印刷機導入",
                "amount": 4800000,
                "roi": "2年で投資回収見込み",
            },
            status=ApplicationStatus.DRAFT,
            created_at=_at("2025-09-28T07:10:00"),
        ),
    ]


async def seed_demo_data(repository: WorkflowRepository) -> None:
    """Load users, codes, routes and sample applications. Safe to run twice."""
    for user in DEMO_USERS:
        await repository.save_user(user)
    await seed_application_codes(repository)
    for route in demo_routes():
        if await repository.get_route_by_name(route.name) is None:
            await repository.save_route(route)
    for application in demo_applications():
        if await repository.get_application(application.id) is None:
            await repository.create_application(application)
