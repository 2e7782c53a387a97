"""Chain builder: the ordered reviewer steps for each request type."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .config import ApprovalChainConfig
from .constants import ROLE_PREFIX
from .contracts import Approval, ApprovalStatus, ChainStep, RequestType, utcnow
from .errors import InvalidStateError, UnknownRequestTypeError

logger = logging.getLogger(__name__)

ReviewerSelector = Callable[[Mapping[str, Any]], str]


class StepDefinition(BaseModel):
    """A configured step; ``reviewer`` is a fixed id or a payload selector."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    step_name: str
    reviewer: Union[str, ReviewerSelector]

    def resolve(self, payload: Mapping[str, Any]) -> ChainStep:
        reviewer = self.reviewer(payload) if callable(self.reviewer) else self.reviewer
        if not reviewer:
            raise InvalidStateError(f"Step {self.step_name!r} resolved to no reviewer")
        return ChainStep(step_name=self.step_name, reviewer_id=reviewer)


class ChainDefinition(BaseModel):
    """The fixed step list used for every request of one type."""

    request_type: RequestType
    steps: List[StepDefinition] = Field(default_factory=list)


def _role(name: str) -> str:
    return f"{ROLE_PREFIX}{name}"


def default_chains() -> List[ChainDefinition]:
    """Built-in chains keyed on the console's reviewer roles."""

    contracts = StepDefinition(step_name="Contracts Review", reviewer=_role("Contracts"))
    financial = StepDefinition(step_name="Finance Review", reviewer=_role("Financial"))
    general = StepDefinition(step_name="General Manager Approval", reviewer=_role("General"))
    return [
        ChainDefinition(request_type=RequestType.CLIENTS, steps=[contracts, general]),
        ChainDefinition(request_type=RequestType.PROJECTS, steps=[contracts, financial, general]),
        ChainDefinition(request_type=RequestType.CONTRACTS, steps=[contracts, financial, general]),
        ChainDefinition(request_type=RequestType.TASKS, steps=[contracts, general]),
        ChainDefinition(request_type=RequestType.FINANCIAL, steps=[financial, general]),
        ChainDefinition(request_type=RequestType.EMPLOYMENT, steps=[general]),
    ]


def parse_request_type(value: Union[str, RequestType]) -> RequestType:
    try:
        return RequestType(value)
    except ValueError:
        raise UnknownRequestTypeError(value) from None


class ChainBuilder:
    """Produces the ordered chain for a request type.

    Building a chain has no side effects; persisting the resulting
    approvals is the caller's job (see :func:`materialize`).
    """

    def __init__(self, definitions: Optional[List[ChainDefinition]] = None) -> None:
        self._chains: Dict[RequestType, ChainDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    @classmethod
    def from_config(cls, config: ApprovalChainConfig) -> "ChainBuilder":
        """Start from the built-in chains and apply overrides from ``config``."""
        builder = cls(default_chains())
        for type_name, steps in config.chains.items():
            builder.register(
                ChainDefinition(
                    request_type=parse_request_type(type_name),
                    steps=[StepDefinition(step_name=s.step_name, reviewer=s.reviewer) for s in steps],
                )
            )
        return builder

    def register(self, definition: ChainDefinition) -> None:
        if not definition.steps:
            raise InvalidStateError(
                f"Chain for {definition.request_type.value} must have at least one step"
            )
        if definition.request_type in self._chains:
            logger.debug(f"Replacing approval chain for {definition.request_type.value}")
        self._chains[definition.request_type] = definition

    def request_types(self) -> List[RequestType]:
        return list(self._chains)

    def definition_for(self, request_type: Union[str, RequestType]) -> ChainDefinition:
        request_type = parse_request_type(request_type)
        definition = self._chains.get(request_type)
        if definition is None:
            raise UnknownRequestTypeError(request_type.value)
        return definition

    def build_chain(
        self,
        request_type: Union[str, RequestType],
        payload: Optional[Mapping[str, Any]] = None,
    ) -> List[ChainStep]:
        """Return the ordered reviewer steps for ``request_type``."""
        definition = self.definition_for(request_type)
        return [step.resolve(payload or {}) for step in definition.steps]


def materialize(
    request_id: str, steps: List[ChainStep], now: Optional[datetime] = None
) -> List[Approval]:
    """Turn a built chain into approval rows: step 1 active, the rest waiting."""
    if not steps:
        raise InvalidStateError("Cannot materialize an empty chain")
    now = now or utcnow()
    return [
        Approval(
            request_id=request_id,
            sequence=index,
            step_name=step.step_name,
            reviewer_id=step.reviewer_id,
            status=ApprovalStatus.PENDING if index == 1 else ApprovalStatus.NOT_STARTED,
            created_at=now,
        )
        for index, step in enumerate(steps, start=1)
    ]
