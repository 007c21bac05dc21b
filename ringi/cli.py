"""Command line interface for the ringi approval workflow."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer

from ringi import ApprovalEngine, ApplicationStatus
from ringi.config import load_config
from ringi.contracts import ApplicationWithDetails
from ringi.demo import seed_demo_data
from ringi.errors import RingiError, is_stale_decision
from ringi.queries import DEFAULT_SORT_KEY, TABS

T = TypeVar("T")

app = typer.Typer(help="CLI for ringi approval workflows")

# Command groups
route_app = typer.Typer(help="Commands for managing approval routes")
code_app = typer.Typer(help="Commands for application codes")
application_app = typer.Typer(help="Commands for submitting and deciding applications")
demo_app = typer.Typer(help="Demo data helpers")

app.add_typer(route_app, name="route")
app.add_typer(code_app, name="code")
app.add_typer(application_app, name="application")
app.add_typer(demo_app, name="demo")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """ringi CLI entry point."""
    level = "DEBUG" if verbose else load_config().log_level
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def _run(action: Callable[[ApprovalEngine], Awaitable[T]]) -> T:
    """Run ``action`` against a configured engine, mapping workflow errors to exit 1."""

    async def runner() -> T:
        engine = ApprovalEngine.from_config()
        try:
            if engine.audit is not None:
                await engine.audit.init_db()
            return await action(engine)
        finally:
            await engine.close()

    try:
        return asyncio.run(runner())
    except RingiError as exc:
        if is_stale_decision(exc):
            typer.secho(
                "This request can no longer be acted on.", fg=typer.colors.YELLOW
            )
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _format_row(item: ApplicationWithDetails) -> str:
    type_name = item.application_code.name if item.application_code else item.application_code_id
    applicant = item.applicant.name if item.applicant else item.applicant_id
    updated = (item.updated_at or item.created_at).isoformat(timespec="minutes")
    return f"{item.id}\t{type_name}\t{applicant}\t{item.status.value}\t{updated}"


# ----------------------------------------------------------------------
# Routes
@route_app.command("list")
def route_list() -> None:
    """List approval routes in store order with their approvers."""
    routes = _run(lambda engine: engine.list_routes())
    if not routes:
        typer.echo("No approval routes found")
        return
    for route in routes:
        typer.echo(f"{route.id}\t{route.name}\t{' -> '.join(route.approver_ids())}")


@route_app.command("show")
def route_show(name: str) -> None:
    """Show the steps of the route called NAME."""
    route = _run(lambda engine: engine.get_route_by_name(name))
    typer.echo(f"Route {route.name} ({route.id})")
    for level, approver in enumerate(route.approver_ids(), start=1):
        typer.echo(f"  {level}. {approver}")


@route_app.command("create")
def route_create(
    name: str,
    approvers: List[str] = typer.Option(..., "--approver", help="Approver id, in order"),
) -> None:
    """Create a route; repeat --approver once per step."""
    route = _run(lambda engine: engine.routes.create_route(name, approvers))
    typer.echo(f"Created route {route.name}: {route.id}")


@route_app.command("delete")
def route_delete(route_id: str) -> None:
    """Delete a route. Applications already submitted keep their approvers."""
    _run(lambda engine: engine.routes.delete_route(route_id))
    typer.echo(f"Deleted route {route_id}")


# ----------------------------------------------------------------------
# Application codes
@code_app.command("list")
def code_list() -> None:
    """List application codes."""
    codes = _run(lambda engine: engine.codes.list())
    if not codes:
        typer.echo("No application codes found")
        return
    for code in codes:
        typer.echo(f"{code.code}\t{code.name}\t{code.id}")


# ----------------------------------------------------------------------
# Applications
@application_app.command("submit")
def application_submit(
    code: str = typer.Option(..., help="Application code or alias, e.g. EXP or leave"),
    applicant: str = typer.Option(..., help="Applicant user id"),
    route_id: Optional[str] = typer.Option(None, help="Approval route id"),
    route_name: Optional[str] = typer.Option(None, help="Required approval route name"),
    form: str = typer.Option("{}", help="Form data as a JSON object"),
    draft: bool = typer.Option(False, help="Save as draft instead of submitting"),
) -> None:
    """
    Submit a new application.

    Without --route-id the route is resolved by --route-name, falling back
    to the configured default route (社長決裁ルート unless overridden).

    Example:
        ringi application submit --code LEV --applicant user-002 \\
            --route-name 社長決裁ルート --form '{"leaveType": "有給休暇"}'
    """
    try:
        form_data: Any = json.loads(form)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid --form JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def action(engine: ApprovalEngine):
        application_code = await engine.codes.by_code(code)
        if route_id:
            resolved_route_id = route_id
        else:
            route = await engine.routes.resolve_route(
                route_name or engine.default_route_name
            )
            resolved_route_id = route.id
        return await engine.submit(
            application_code.id,
            form_data,
            resolved_route_id,
            applicant,
            status=ApplicationStatus.DRAFT if draft else None,
        )

    application = _run(action)
    typer.echo(f"Application {application.id}: {application.status.value}")
    if application.approver_id:
        typer.echo(f"Awaiting approval by {application.approver_id} (level {application.current_level})")


@application_app.command("submit-draft")
def application_submit_draft(
    application_id: str,
    applicant: str = typer.Option(..., help="Applicant user id"),
) -> None:
    """Submit a previously saved draft."""
    application = _run(
        lambda engine: engine.processor.submit_draft(application_id, applicant)
    )
    typer.echo(
        f"Application {application.id}: {application.status.value}, "
        f"awaiting {application.approver_id}"
    )


@application_app.command("approve")
def application_approve(
    application_id: str,
    approver: str = typer.Option(..., help="Acting approver user id"),
) -> None:
    """Approve the current step of an application."""
    application = _run(lambda engine: engine.approve(application_id, approver))
    if application.status == ApplicationStatus.APPROVED:
        typer.echo(f"Application {application.id} approved")
    else:
        typer.echo(
            f"Application {application.id} advanced to level {application.current_level}, "
            f"awaiting {application.approver_id}"
        )


@application_app.command("reject")
def application_reject(
    application_id: str,
    approver: str = typer.Option(..., help="Acting approver user id"),
    reason: str = typer.Option(..., help="Rejection reason"),
) -> None:
    """Reject an application at its current step."""
    application = _run(lambda engine: engine.reject(application_id, approver, reason))
    typer.echo(
        f"Application {application.id} rejected at level {application.current_level}: "
        f"{application.rejection_reason}"
    )


@application_app.command("list")
def application_list(
    user: str = typer.Option(..., help="User the view is built for"),
    tab: str = typer.Option("pending", help="pending, submitted or completed"),
    search: Optional[str] = typer.Option(None, help="Filter by applicant, type or status"),
    sort: str = typer.Option(DEFAULT_SORT_KEY, help="Sort key"),
    ascending: bool = typer.Option(False, help="Sort ascending"),
) -> None:
    """
    List one tab of the approval inbox for USER.

    Example:
        ringi application list --user user-001 --tab pending
        # Output: pending: 1  submitted: 0  completed: 0
        #         app-001    経費精算    高橋 美咲    pending_approval    2025-10-04T02:45+00:00
    """
    if tab not in TABS:
        typer.secho(f"Unknown tab: {tab}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def action(engine: ApprovalEngine):
        counts = await engine.queries.tab_counts(user)
        items = await engine.queries.list_view(
            tab, user, search=search, sort_key=sort, descending=not ascending
        )
        return counts, items

    counts, items = _run(action)
    typer.echo("  ".join(f"{name}: {counts[name]}" for name in TABS))
    if not items:
        typer.echo("No applications found")
        return
    for item in items:
        typer.echo(_format_row(item))


@application_app.command("show")
def application_show(application_id: str) -> None:
    """Show an application and its progress along the route."""
    item = _run(lambda engine: engine.queries.get_application(application_id))
    typer.echo(_format_row(item))
    if item.approval_route:
        typer.echo(f"Route: {item.approval_route.name}")
    steps = item.route_steps or (item.approval_route.approver_ids() if item.approval_route else [])
    for level, approver in enumerate(steps, start=1):
        if item.status == ApplicationStatus.APPROVED or (
            item.status != ApplicationStatus.REJECTED and level < item.current_level
        ):
            mark = "approved"
        elif level == item.current_level and item.status == ApplicationStatus.PENDING_APPROVAL:
            mark = "current"
        elif level == item.current_level and item.status == ApplicationStatus.REJECTED:
            mark = "rejected"
        else:
            mark = "waiting"
        typer.echo(f"  {level}. {approver}: {mark}")
    if item.rejection_reason:
        typer.echo(f"Rejection reason: {item.rejection_reason}")
    if item.form_data:
        typer.echo(f"Form: {json.dumps(item.form_data, ensure_ascii=False)}")


@application_app.command("history")
def application_history(application_id: str) -> None:
    """Show recorded decisions for an application."""

    async def action(engine: ApprovalEngine):
        if engine.audit is None:
            return None
        return await engine.audit.history(application_id)

    records = _run(action)
    if records is None:
        typer.echo("Decision history is not configured (set audit_database_url)")
        raise typer.Exit(code=1)
    if not records:
        typer.echo("No decisions recorded")
        return
    for record in records:
        line = f"{record.decided_at.isoformat(timespec='seconds')}\t{record.action}\tlevel {record.level}\t{record.actor_id}"
        if record.reason:
            line += f"\t{record.reason}"
        typer.echo(line)


# ----------------------------------------------------------------------
@demo_app.command("seed")
def demo_seed() -> None:
    """Load demo users, codes, routes and applications."""
    _run(lambda engine: seed_demo_data(engine.repository))
    typer.echo("Demo data loaded")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
