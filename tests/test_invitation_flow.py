"""InvitationFlow tests — register, resend, and confirm into a team.

Learn: Invitation tokens are read back from the LogNotifier outbox, the
same way a user would click the mailed link. After any confirm() that
may have rolled back internally, objects are re-read by id.
"""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from taskhub.auth.tokens import TokenKind
from taskhub.db.models import Team, TeamMember
from taskhub.errors import Conflict, NotFound, Unauthorized
from taskhub.services.credential_store import CredentialStore
from taskhub.services.invitation_flow import InvitationFlow
from taskhub.services.notifier import Notifier
from taskhub.services.team_directory import TeamDirectory

from conftest import link_token


@pytest.fixture()
def flow(db, settings, tokens, notifier):
    return InvitationFlow(db, settings, tokens, notifier)


async def _count(db, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


# ═══════════════════════════════════════════════════════════
# Issue
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_stores_and_mails_token(flow, notifier, tokens):
    user, token = await flow.register("a@x.com", "p1-password", "Ada")

    assert user.invitation_token == token
    assert user.team_id is None
    assert tokens.verify(token, TokenKind.INVITATION) == str(user.id)

    assert len(notifier.outbox) == 1
    message = notifier.outbox[0]
    assert message["to"] == "a@x.com"
    assert link_token(message) == token


@pytest.mark.asyncio
async def test_resend_supersedes_previous_token(flow, notifier):
    _, old = await flow.register("a@x.com", "p1-password", "Ada")
    new = await flow.resend("A@x.com")

    assert new != old
    assert link_token(notifier.outbox[-1]) == new

    with pytest.raises(Unauthorized):
        await flow.confirm(old, "Acme")
    user = await flow.confirm(new, "Acme")
    assert user.team_id is not None


@pytest.mark.asyncio
async def test_resend_unknown_email(flow):
    with pytest.raises(NotFound):
        await flow.resend("nobody@x.com")


@pytest.mark.asyncio
async def test_resend_after_joining_conflicts(flow):
    _, token = await flow.register("a@x.com", "p1-password", "Ada")
    await flow.confirm(token, "Acme")

    with pytest.raises(Conflict):
        await flow.resend("a@x.com")


@pytest.mark.asyncio
async def test_failed_delivery_keeps_the_token(db, settings, tokens):
    class BrokenNotifier(Notifier):
        async def send(self, to_address, subject, body):
            raise ConnectionRefusedError("smtp down")

    flow = InvitationFlow(db, settings, tokens, BrokenNotifier())
    user, token = await flow.register("a@x.com", "p1-password", "Ada")
    user_id = user.id

    stored = await CredentialStore(db, settings).find_by_id(user_id)
    assert stored.invitation_token == token
    assert (await flow.confirm(token, "Acme")).team_id is not None


# ═══════════════════════════════════════════════════════════
# Confirm
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_two_users_join_the_same_team(db, flow, notifier):
    """A creates Acme, B joins it; both are members, A owns it."""
    a, _ = await flow.register("a@x.com", "p1-password", "Ada")
    b, _ = await flow.register("b@x.com", "p2-password", "Bob")
    a_id, b_id = a.id, b.id
    token_a = link_token(notifier.outbox[0])
    token_b = link_token(notifier.outbox[1])

    a = await flow.confirm(token_a, "Acme")
    team_id = a.team_id
    assert a.invitation_token is None

    b = await flow.confirm(token_b, "Acme")
    assert b.team_id == team_id
    assert b.invitation_token is None

    teams = TeamDirectory(db)
    team = await teams.get(team_id)
    assert team.name == "Acme"
    assert team.owner_id == a_id
    member_ids = {u.id for u in await teams.list_members(team_id)}
    assert member_ids == {a_id, b_id}
    assert await _count(db, select(func.count(Team.id))) == 1


@pytest.mark.asyncio
async def test_confirm_twice_is_idempotent(db, flow):
    _, token = await flow.register("a@x.com", "p1-password", "Ada")

    first = await flow.confirm(token, "Acme")
    team_id = first.team_id
    again = await flow.confirm(token, "Acme")

    assert again.team_id == team_id
    assert await _count(db, select(func.count(Team.id))) == 1
    assert await _count(db, select(func.count(TeamMember.id))) == 1


@pytest.mark.asyncio
async def test_replay_against_another_team_is_rejected(db, flow):
    _, token = await flow.register("a@x.com", "p1-password", "Ada")
    first = await flow.confirm(token, "Acme")
    team_id = first.team_id

    with pytest.raises(Unauthorized):
        await flow.confirm(token, "Globex")

    user = await flow.users.find_by_email("a@x.com")
    assert user.team_id == team_id
    assert await TeamDirectory(db).find_by_name("Globex") is None


@pytest.mark.asyncio
async def test_confirm_rejects_other_token_kinds(flow, tokens):
    user, _ = await flow.register("a@x.com", "p1-password", "Ada")
    reset_token = tokens.issue(str(user.id), TokenKind.RESET)

    with pytest.raises(Unauthorized):
        await flow.confirm(reset_token, "Acme")
    with pytest.raises(Unauthorized):
        await flow.confirm("garbage", "Acme")


@pytest.mark.asyncio
async def test_confirm_for_deleted_user(flow, tokens):
    token = tokens.issue(str(uuid.uuid4()), TokenKind.INVITATION)
    with pytest.raises(NotFound):
        await flow.confirm(token, "Acme")


# ═══════════════════════════════════════════════════════════
# Racing confirmations
# ═══════════════════════════════════════════════════════════


async def _register_in(session_factory, settings, tokens, notifier):
    async with session_factory() as s:
        user, token = await InvitationFlow(s, settings, tokens, notifier).register(
            "a@x.com", "p1-password", "Ada"
        )
        return user.id, token


async def _team_names(session_factory) -> list[str]:
    async with session_factory() as s:
        return list((await s.execute(select(Team.name).order_by(Team.name))).scalars())


@pytest.mark.asyncio
async def test_losing_confirm_leaves_no_team_behind(session_factory, settings, tokens, notifier):
    """The slower request saw the pending token, but the faster one consumed it first."""
    user_id, token = await _register_in(session_factory, settings, tokens, notifier)

    async with session_factory() as slow:
        # Loaded while the invitation is still pending
        await CredentialStore(slow, settings).find_by_id(user_id)

        async with session_factory() as fast:
            await InvitationFlow(fast, settings, tokens, notifier).confirm(token, "Acme")

        with pytest.raises(Unauthorized):
            await InvitationFlow(slow, settings, tokens, notifier).confirm(token, "Globex")

    assert await _team_names(session_factory) == ["Acme"]
    async with session_factory() as s:
        teams = TeamDirectory(s)
        acme = await teams.find_by_name("Acme")
        assert (await teams.find_by_member(user_id)).id == acme.id
        assert await _count(s, select(func.count(TeamMember.id))) == 1
        user = await CredentialStore(s, settings).find_by_id(user_id)
        assert user.team_id == acme.id


@pytest.mark.asyncio
async def test_losing_confirm_for_same_team_succeeds(session_factory, settings, tokens, notifier):
    user_id, token = await _register_in(session_factory, settings, tokens, notifier)

    async with session_factory() as slow:
        await CredentialStore(slow, settings).find_by_id(user_id)

        async with session_factory() as fast:
            await InvitationFlow(fast, settings, tokens, notifier).confirm(token, "Acme")

        user = await InvitationFlow(slow, settings, tokens, notifier).confirm(token, "Acme")
        assert user.invitation_token is None

    assert await _team_names(session_factory) == ["Acme"]
    async with session_factory() as s:
        assert await _count(s, select(func.count(TeamMember.id))) == 1


async def _confirm_in(session_factory, settings, tokens, notifier, token, team_name):
    async with session_factory() as s:
        user = await InvitationFlow(s, settings, tokens, notifier).confirm(token, team_name)
        return user.team_id


@pytest.mark.asyncio
async def test_concurrent_confirms_same_team(session_factory, settings, tokens, notifier):
    _, token = await _register_in(session_factory, settings, tokens, notifier)

    results = await asyncio.gather(
        *(
            _confirm_in(session_factory, settings, tokens, notifier, token, "Acme")
            for _ in range(2)
        ),
        return_exceptions=True,
    )

    assert len(set(results)) == 1
    assert not isinstance(results[0], Exception)
    assert await _team_names(session_factory) == ["Acme"]
    async with session_factory() as s:
        assert await _count(s, select(func.count(TeamMember.id))) == 1


@pytest.mark.asyncio
async def test_concurrent_confirms_different_teams(session_factory, settings, tokens, notifier):
    """Exactly one team wins; the loser's attempt leaves no trace."""
    user_id, token = await _register_in(session_factory, settings, tokens, notifier)

    results = await asyncio.gather(
        _confirm_in(session_factory, settings, tokens, notifier, token, "Acme"),
        _confirm_in(session_factory, settings, tokens, notifier, token, "Globex"),
        return_exceptions=True,
    )

    won = [r for r in results if not isinstance(r, Exception)]
    lost = [r for r in results if isinstance(r, Exception)]
    assert len(won) == 1
    assert len(lost) == 1
    assert isinstance(lost[0], Unauthorized)

    async with session_factory() as s:
        teams = TeamDirectory(s)
        names = await _team_names(session_factory)
        assert len(names) == 1
        team = await teams.find_by_name(names[0])
        assert team.id == won[0]
        assert [u.id for u in await teams.list_members(team.id)] == [user_id]
        assert await _count(s, select(func.count(TeamMember.id))) == 1
