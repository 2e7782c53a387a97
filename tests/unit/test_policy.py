import pytest

from approvalchain.config import SecurityConfig
from approvalchain.contracts import Approval, RequestType, TaskRequest
from approvalchain.security import Authorizer, RoleAuthorizer


def _approval(reviewer_id):
    return Approval(request_id="req-1", sequence=1, step_name="Review", reviewer_id=reviewer_id)


def _request(created_by="alice"):
    return TaskRequest(
        request_code="TSK-20260101-000001",
        request_type=RequestType.TASKS,
        subject_id="task-1",
        created_by=created_by,
    )


@pytest.mark.asyncio
async def test_base_authorizer_exact_match_only():
    authorizer = Authorizer()
    assert await authorizer.is_authorized("lena", _approval("lena"))
    assert not await authorizer.is_authorized("Lena", _approval("lena"))
    assert not await authorizer.is_authorized("lena", _approval("role:Contracts"))
    assert await authorizer.can_cancel("alice", _request())
    assert not await authorizer.can_cancel("bob", _request())


@pytest.mark.asyncio
async def test_role_authorizer_matches_role_case_insensitively():
    authorizer = RoleAuthorizer.from_config(
        SecurityConfig(roles={"lena": ["contracts"], "fred": ["Financial"]}, admins=["root"])
    )
    reviewer = _approval("role:Contracts")
    assert await authorizer.is_authorized("lena", reviewer)
    assert not await authorizer.is_authorized("fred", reviewer)
    assert not await authorizer.is_authorized("nobody", reviewer)
    # no substring matching
    assert not await authorizer.is_authorized("lena", _approval("role:Contract"))
    assert await authorizer.is_authorized("dora", _approval("dora"))
    assert authorizer.roles_of("lena") == {"contracts"}


@pytest.mark.asyncio
async def test_role_authorizer_admins_may_cancel():
    authorizer = RoleAuthorizer(admins=["root"])
    assert await authorizer.can_cancel("alice", _request())
    assert await authorizer.can_cancel("root", _request())
    assert not await authorizer.can_cancel("bob", _request())


@pytest.mark.asyncio
async def test_reviewer_keys_expand_roles():
    assert await Authorizer().reviewer_keys("lena") == {"lena"}
    authorizer = RoleAuthorizer(roles={"lena": ["Contracts", "General"]})
    assert await authorizer.reviewer_keys("lena") == {"lena", "role:Contracts", "role:General"}
    assert await authorizer.reviewer_keys("nobody") == {"nobody"}
