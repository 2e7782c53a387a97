"""Workflow engine: advances requests through their approval chains."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .actions import CommitActionRegistry
from .chains import ChainBuilder, materialize, parse_request_type
from .constants import REQUEST_CODE_PREFIXES
from .contracts import (
    SETTLED_APPROVAL_STATUSES,
    Approval,
    ApprovalStatus,
    Outcome,
    RequestStatus,
    RequestType,
    TaskRequest,
    TransitionEvent,
    new_id,
    utcnow,
)
from .errors import (
    CommitActionError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from .hooks.base import TransitionHook
from .persistence import RequestRepository
from .rollup import derive_status, sort_timeline, validate_chain
from .security.policy import Authorizer

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def generate_request_code(request_type: RequestType, now: datetime) -> str:
    """Return a code like ``CLT-20260119-4f9a2c``."""
    prefix = REQUEST_CODE_PREFIXES.get(request_type.value, "REQ")
    return f"{prefix}-{now:%Y%m%d}-{secrets.token_hex(3)}"


class WorkflowEngine:
    """The only writer of request and approval state after creation.

    Every mutating call reads the request and its chain, computes the next
    state in memory and hands the result to
    :meth:`RequestRepository.commit_transition`, which applies it atomically
    or raises :class:`~approvalchain.errors.ConflictError` if another writer
    got there first. The engine itself never retries.
    """

    def __init__(
        self,
        repository: RequestRepository,
        chain_builder: ChainBuilder,
        authorizer: Optional[Authorizer] = None,
        hooks: Iterable[TransitionHook] = (),
        commit_actions: Optional[CommitActionRegistry] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repository = repository
        self._chains = chain_builder
        self._authorizer = authorizer or Authorizer()
        self._hooks: List[TransitionHook] = list(hooks)
        self._commit_actions = commit_actions or CommitActionRegistry()
        self._clock = clock or utcnow

    @property
    def repository(self) -> RequestRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Inbound operations
    async def create_request(
        self,
        request_type: Union[str, RequestType],
        subject_id: str,
        notes: Optional[str],
        created_by: str,
        payload: Optional[Dict[str, Any]] = None,
        subject_name: Optional[str] = None,
    ) -> TaskRequest:
        """Create a request and persist its full chain in one step."""
        request_type = parse_request_type(request_type)
        steps = self._chains.build_chain(request_type, payload)
        now = self._clock()
        request_id = new_id()
        request = TaskRequest(
            id=request_id,
            request_code=generate_request_code(request_type, now),
            request_type=request_type,
            subject_id=subject_id,
            subject_name=subject_name,
            status=RequestStatus.PENDING,
            notes=notes,
            payload=payload or {},
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        approvals = materialize(request_id, steps, now)
        await self._repository.create_request(request, approvals)
        logger.info(
            f"Created {request_type.value} request {request.request_code} "
            f"with {len(approvals)} step(s) for subject {subject_id}"
        )
        await self._publish(
            TransitionEvent(
                request_id=request.id,
                approval_id=approvals[0].id,
                outcome="Create",
                actor=created_by,
                timestamp=now,
                request_status=request.status,
            )
        )
        return request

    async def get_request(self, request_id: str) -> TaskRequest:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise NotFoundError("TaskRequest", request_id)
        return request

    async def decide(
        self,
        approval_id: str,
        outcome: Union[str, Outcome],
        decider_id: str,
        remarks: Optional[str] = None,
    ) -> TaskRequest:
        """Approve or reject the active step of a request.

        Raises:
            NotFoundError: No approval with ``approval_id`` exists.
            InvalidStateError: The step is not the active ``Pending`` step,
                or the stored chain is malformed.
            UnauthorizedError: ``decider_id`` is not the step's reviewer.
            ConflictError: A concurrent transition committed first.
        """
        outcome = Outcome(outcome)
        approval = await self._repository.get_approval(approval_id)
        if approval is None:
            raise NotFoundError("Approval", approval_id)
        if approval.status != ApprovalStatus.PENDING:
            raise InvalidStateError(
                f"Approval {approval_id} is {approval.status.value}, not Pending"
            )
        if not await self._authorizer.is_authorized(decider_id, approval):
            raise UnauthorizedError(decider_id, "decide", f"approval {approval_id}")

        request = await self.get_request(approval.request_id)
        chain = await self._repository.list_approvals(request.id)
        validate_chain(chain)
        expected_version = request.version

        # Re-check against the chain read alongside the request version; the
        # single approval read above may predate a concurrent commit.
        current = next((a for a in chain if a.id == approval_id), None)
        if current is None or current.status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Approval {approval_id} is no longer Pending")

        now = self._clock()
        current.status = (
            ApprovalStatus.APPROVED if outcome == Outcome.APPROVE else ApprovalStatus.REJECTED
        )
        current.decided_by = decider_id
        current.decided_at = now
        current.remarks = remarks
        changed = [current]

        if outcome == Outcome.APPROVE:
            following = next((a for a in chain if a.sequence == current.sequence + 1), None)
            if following is not None:
                following.status = ApprovalStatus.PENDING
                changed.append(following)
        else:
            for step in chain:
                if step.status == ApprovalStatus.NOT_STARTED:
                    step.status = ApprovalStatus.SKIPPED
                    changed.append(step)

        previous_status = request.status
        request.status = derive_status(chain)
        request.updated_at = now
        await self._repository.commit_transition(request, changed, expected_version)
        request.version = expected_version + 1

        logger.info(
            f"{outcome.value} step {current.sequence} ({current.step_name}) of "
            f"{request.request_code} by {decider_id}; request is {request.status.value}"
        )
        await self._publish(
            TransitionEvent(
                request_id=request.id,
                approval_id=current.id,
                outcome=outcome.value,
                actor=decider_id,
                timestamp=now,
                request_status=request.status,
            )
        )
        if request.status == RequestStatus.APPROVED and previous_status != RequestStatus.APPROVED:
            await self._run_commit_action(request)
        return request

    async def cancel(
        self, request_id: str, actor_id: str, remarks: Optional[str] = None
    ) -> TaskRequest:
        """Administratively withdraw a ``Pending`` request.

        Every step not yet decided becomes ``Skipped`` and the request rolls
        up to ``Cancelled``.
        """
        request = await self.get_request(request_id)
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(
                f"Request {request.request_code} is {request.status.value}, not Pending"
            )
        if not await self._authorizer.can_cancel(actor_id, request):
            raise UnauthorizedError(actor_id, "cancel", f"request {request.request_code}")

        chain = await self._repository.list_approvals(request_id)
        validate_chain(chain)
        expected_version = request.version
        now = self._clock()

        changed: List[Approval] = []
        active_id: Optional[str] = None
        for step in chain:
            if step.is_active:
                active_id = step.id
                step.remarks = remarks
            if step.status not in SETTLED_APPROVAL_STATUSES:
                step.status = ApprovalStatus.SKIPPED
                changed.append(step)

        request.status = derive_status(chain)
        request.updated_at = now
        await self._repository.commit_transition(request, changed, expected_version)
        request.version = expected_version + 1

        logger.info(f"Cancelled {request.request_code} by {actor_id}")
        await self._publish(
            TransitionEvent(
                request_id=request.id,
                approval_id=active_id,
                outcome="Cancel",
                actor=actor_id,
                timestamp=now,
                request_status=request.status,
            )
        )
        return request

    async def redeliver(self, request_id: str) -> TaskRequest:
        """Run the commit action again for an ``Approved`` request."""
        request = await self.get_request(request_id)
        if request.status != RequestStatus.APPROVED:
            raise InvalidStateError(
                f"Request {request.request_code} is {request.status.value}, not Approved"
            )
        await self._run_commit_action(request)
        return request

    async def timeline(self, request_id: str) -> List[Approval]:
        """Committed approvals of a request in display order."""
        await self.get_request(request_id)
        return sort_timeline(await self._repository.list_approvals(request_id))

    # ------------------------------------------------------------------
    # Outbound collaborators
    async def _publish(self, event: TransitionEvent) -> None:
        for hook in self._hooks:
            try:
                await hook.notify(event)
            except Exception:
                logger.exception(
                    f"Hook {type(hook).__name__} failed for {event.outcome} on {event.request_id}"
                )

    async def _run_commit_action(self, request: TaskRequest) -> None:
        action = self._commit_actions.get(request.request_type)
        if action is None:
            logger.debug(f"No commit action registered for {request.request_type.value}")
            return
        try:
            await action(request)
        except Exception as exc:
            logger.exception(f"Commit action failed for {request.request_code}")
            raise CommitActionError(request.id, exc) from exc
        logger.info(f"Commit action applied for {request.request_code}")
