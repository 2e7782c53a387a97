"""Approval query service and its read channels."""

from __future__ import annotations

from typing import Optional

from ..config import ApprovalChainConfig, load_config
from ..persistence import RequestRepository
from ..security.policy import RoleAuthorizer
from .channels import ApprovalChannel, ChannelResult, HttpChannel, RepositoryChannel
from .envelope import NormalizedResponse, extract_items, normalize_response
from .service import ApprovalQueryService, merge_by_id, merge_pending


def get_query_service(
    repository: RequestRepository, config: Optional[ApprovalChainConfig] = None
) -> ApprovalQueryService:
    """Build the query service described by ``config.query``.

    Without a ``primary_url`` the repository is the only channel. With one,
    the REST API is primary and the repository is the fallback unless
    ``use_fallback`` is off. Reviewer queues expand users into their
    configured roles.
    """

    config = config or load_config()
    authorizer = RoleAuthorizer.from_config(config.security)
    direct = RepositoryChannel(repository)
    if not config.query.primary_url:
        return ApprovalQueryService(direct, authorizer=authorizer)
    http = HttpChannel(config.query.primary_url, timeout=config.query.timeout)
    return ApprovalQueryService(
        http, direct if config.query.use_fallback else None, authorizer=authorizer
    )


__all__ = [
    "ApprovalChannel",
    "ApprovalQueryService",
    "ChannelResult",
    "HttpChannel",
    "NormalizedResponse",
    "RepositoryChannel",
    "extract_items",
    "get_query_service",
    "merge_by_id",
    "merge_pending",
    "normalize_response",
]
