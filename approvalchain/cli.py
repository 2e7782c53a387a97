"""Command line interface for operating approval workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

import typer

from approvalchain import ChainBuilder, WorkflowEngine, get_hooks, get_query_service, get_repository
from approvalchain.config import load_config
from approvalchain.contracts import Approval, Outcome, RequestFilters, RequestStatus, RequestType
from approvalchain.errors import ApprovalChainError
from approvalchain.rollup import sort_timeline
from approvalchain.security import RoleAuthorizer
from approvalchain.utils.retry import retry_on_conflict

app = typer.Typer(help="CLI for approvalchain workflows")

# Command groups
request_app = typer.Typer(help="Commands for managing requests")
approval_app = typer.Typer(help="Commands for deciding and querying approvals")
chain_app = typer.Typer(help="Commands for inspecting approval chains")

app.add_typer(request_app, name="request")
app.add_typer(approval_app, name="approval")
app.add_typer(chain_app, name="chain")

_OUTCOMES = {"approve": Outcome.APPROVE, "reject": Outcome.REJECT}


@app.callback()
def main() -> None:
    """approvalchain CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_engine() -> WorkflowEngine:
    config = load_config()
    return WorkflowEngine(
        get_repository(),
        ChainBuilder.from_config(config),
        authorizer=RoleAuthorizer.from_config(config.security),
        hooks=get_hooks(config),
    )


def _fail(exc: Exception) -> None:
    typer.secho(str(exc), fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def _echo_timeline(approvals: List[Approval]) -> None:
    for a in approvals:
        line = f"  {a.sequence}. {a.step_name} [{a.reviewer_id}] {a.status.value}"
        if a.decided_by:
            line += f" by {a.decided_by} at {_fmt(a.decided_at)}"
        if a.remarks:
            line += f" - {a.remarks}"
        typer.echo(line)
        typer.echo(f"     approval id: {a.id}")


@request_app.command("create")
def request_create(
    request_type: str,
    subject_id: str,
    by: str = typer.Option(..., "--by", help="User submitting the request"),
    notes: Optional[str] = typer.Option(None, help="Free-text notes"),
    subject_name: Optional[str] = typer.Option(None, help="Display name of the subject"),
) -> None:
    """
    Submit a new request and materialize its approval chain.

    Example:
        approvalchain request create Clients client-42 --by alice --notes "New client"
    """
    engine = _build_engine()
    try:
        request = asyncio.run(
            engine.create_request(
                request_type, subject_id, notes, by, subject_name=subject_name
            )
        )
    except ApprovalChainError as exc:
        _fail(exc)
    typer.echo(f"Created {request.request_code} ({request.id}): {request.status.value}")


@request_app.command("show")
def request_show(request_id: str) -> None:
    """Show a request and its approval timeline."""
    repo = get_repository()
    request = asyncio.run(repo.get_request(request_id))
    if request is None:
        typer.echo("Request not found")
        raise typer.Exit(code=1)
    typer.echo(
        f"Request {request.request_code} ({request.request_type.value}): {request.status.value}"
    )
    typer.echo(f"Subject: {request.subject_name or request.subject_id}")
    if request.notes:
        typer.echo(f"Notes: {request.notes}")
    typer.echo(f"Created by {request.created_by} at {_fmt(request.created_at)}")
    _echo_timeline(sort_timeline(asyncio.run(repo.list_approvals(request_id))))


@request_app.command("list")
def request_list(
    status: Optional[RequestStatus] = typer.Option(None, help="Only requests in this status"),
) -> None:
    """List requests with their current status."""
    repo = get_repository()
    requests = asyncio.run(repo.list_requests(status))
    if not requests:
        typer.echo("No requests found")
        return
    for r in requests:
        typer.echo(f"{r.id}\t{r.request_code}\t{r.request_type.value}\t{r.status.value}")


@request_app.command("cancel")
def request_cancel(
    request_id: str,
    by: str = typer.Option(..., "--by", help="User cancelling the request"),
    remarks: Optional[str] = typer.Option(None, help="Reason for cancelling"),
) -> None:
    """Cancel a pending request; undecided steps are skipped."""
    engine = _build_engine()
    try:
        request = asyncio.run(
            retry_on_conflict(lambda: engine.cancel(request_id, by, remarks))
        )
    except ApprovalChainError as exc:
        _fail(exc)
    typer.echo(f"{request.request_code}: {request.status.value}")


@approval_app.command("decide")
def approval_decide(
    approval_id: str,
    outcome: str = typer.Argument(..., help="approve or reject"),
    by: str = typer.Option(..., "--by", help="Reviewer making the decision"),
    remarks: Optional[str] = typer.Option(None, help="Decision remarks"),
) -> None:
    """
    Approve or reject the active step of a request.

    Example:
        approvalchain approval decide 9b1d... approve --by bob --remarks "Looks good"
    """
    decision = _OUTCOMES.get(outcome.lower())
    if decision is None:
        typer.secho("Outcome must be 'approve' or 'reject'", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    engine = _build_engine()
    try:
        request = asyncio.run(
            retry_on_conflict(lambda: engine.decide(approval_id, decision, by, remarks))
        )
    except ApprovalChainError as exc:
        _fail(exc)
    typer.echo(f"{request.request_code}: {request.status.value}")


@approval_app.command("pending")
def approval_pending(
    reviewer_id: str,
    request_type: Optional[RequestType] = typer.Option(None, "--type", help="Request type"),
    search: Optional[str] = typer.Option(None, help="Search request code and notes"),
    from_date: Optional[datetime] = typer.Option(None, "--from", formats=["%Y-%m-%d"]),
    to_date: Optional[datetime] = typer.Option(None, "--to", formats=["%Y-%m-%d"]),
    page: int = typer.Option(1, min=1),
    limit: int = typer.Option(10, min=1),
) -> None:
    """List requests waiting on ``reviewer_id``."""
    service = get_query_service(get_repository(), load_config())
    filters = RequestFilters(
        search=search,
        request_type=request_type,
        from_date=from_date.date() if from_date else None,
        to_date=to_date.date() if to_date else None,
    )
    try:
        result = asyncio.run(service.pending_for(reviewer_id, filters, page=page, limit=limit))
    except ApprovalChainError as exc:
        _fail(exc)
    if not result.items:
        typer.echo("No pending approvals")
        return
    for item in result.items:
        typer.echo(
            f"{item.approval.id}\t{item.request.request_code}\t{item.request.request_type.value}"
            f"\tstep {item.approval.sequence}: {item.approval.step_name}"
        )
    typer.echo(f"Page {result.page}/{result.pages} ({result.total} total)")


@approval_app.command("timeline")
def approval_timeline(request_id: str) -> None:
    """Show the ordered approval steps of a request."""
    service = get_query_service(get_repository(), load_config())
    try:
        approvals = asyncio.run(service.timeline_for(request_id))
    except ApprovalChainError as exc:
        _fail(exc)
    if not approvals:
        typer.echo("No approvals for this request")
        raise typer.Exit(code=1)
    _echo_timeline(approvals)


@chain_app.command("show")
def chain_show(request_type: str) -> None:
    """Show the configured reviewer steps for a request type."""
    builder = ChainBuilder.from_config(load_config())
    try:
        steps = builder.build_chain(request_type)
    except ApprovalChainError as exc:
        _fail(exc)
    for index, step in enumerate(steps, start=1):
        typer.echo(f"{index}. {step.step_name} -> {step.reviewer_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
