import pytest
import pytest_asyncio

from ringi.codes import seed_application_codes
from ringi.config import PRESIDENTIAL_ROUTE_NAME
from ringi.contracts import ApprovalRoute, SubmissionPayload, User
from ringi.notifications import InMemoryNotifier
from ringi.persistence import InMemoryWorkflowRepository
from ringi.queries import WorkflowQueryService
from ringi.workflow import DecisionProcessor

TWO_STEP_ROUTE = "二段階承認ルート"


async def seed_basics(repo) -> None:
    for user_id, name in (("U1", "田中 翔"), ("U2", "高橋 美咲"), ("U3", "佐々木 大樹")):
        await repo.save_user(User(id=user_id, name=name))
    await seed_application_codes(repo)
    await repo.save_route(
        ApprovalRoute.from_approvers(PRESIDENTIAL_ROUTE_NAME, ["U1"], id="route-prez")
    )
    await repo.save_route(
        ApprovalRoute.from_approvers(TWO_STEP_ROUTE, ["U1", "U2"], id="route-two")
    )


def _payload(route_id: str = "route-two", code_id: str = "code-exp", **kwargs) -> SubmissionPayload:
    return SubmissionPayload(
        application_code_id=code_id,
        form_data=kwargs.pop("form_data", {"amount": 1200}),
        approval_route_id=route_id,
        **kwargs,
    )


@pytest_asyncio.fixture
async def repo():
    repository = InMemoryWorkflowRepository()
    await seed_basics(repository)
    return repository


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def processor(repo, notifier):
    return DecisionProcessor(repo, notifier=notifier)


@pytest.fixture
def make_payload():
    return _payload


@pytest.fixture
def queries(repo):
    return WorkflowQueryService(repo)
