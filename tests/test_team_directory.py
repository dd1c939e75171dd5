"""TeamDirectory tests — find-or-create and set-like membership.

Learn: A rollback inside the directory expires every object the session
holds, so these tests keep plain ids and re-read rows instead of poking
at ORM objects loaded before the call.
"""

import asyncio
import os

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskhub.db.models import Base, Team, TeamMember
from taskhub.services.credential_store import CredentialStore
from taskhub.services.team_directory import TeamDirectory


async def _user_id(db, settings, email: str):
    user = await CredentialStore(db, settings).register(email, "p1-password", email)
    return user.id


async def _count(db, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_find_or_create_creates_team_with_owner(db, settings):
    owner_id = await _user_id(db, settings, "a@x.com")
    teams = TeamDirectory(db)

    team = await teams.find_or_create("Acme", owner_id)

    assert team.name == "Acme"
    assert team.owner_id == owner_id
    assert await teams.is_member(team.id, owner_id)
    assert [u.id for u in await teams.list_members(team.id)] == [owner_id]


@pytest.mark.asyncio
async def test_find_or_create_returns_existing(db, settings):
    a_id = await _user_id(db, settings, "a@x.com")
    b_id = await _user_id(db, settings, "b@x.com")
    teams = TeamDirectory(db)

    first = await teams.find_or_create("Acme", a_id)
    first_id = first.id
    second = await teams.find_or_create("Acme", b_id)

    assert second.id == first_id
    assert second.owner_id == a_id  # creator of the existing row, not the caller
    assert await _count(db, select(func.count(Team.id))) == 1
    # Finding is not joining
    assert not await teams.is_member(first_id, b_id)


@pytest.mark.asyncio
async def test_find_or_create_recovers_when_another_session_won(session_factory, settings):
    """The losing insert hits the unique constraint and reads the winner's row."""
    async with session_factory() as s1:
        a_id = await _user_id(s1, settings, "a@x.com")
        b_id = await _user_id(s1, settings, "b@x.com")
        winner = await TeamDirectory(s1).find_or_create("Acme", a_id)
        winner_id = winner.id

    async with session_factory() as s2:
        team = await TeamDirectory(s2).find_or_create("Acme", b_id)
        assert team.id == winner_id
        assert await _count(s2, select(func.count(Team.id))) == 1


@pytest.mark.asyncio
async def test_add_member_is_idempotent(db, settings):
    a_id = await _user_id(db, settings, "a@x.com")
    b_id = await _user_id(db, settings, "b@x.com")
    teams = TeamDirectory(db)
    team_id = (await teams.find_or_create("Acme", a_id)).id

    assert await teams.add_member(team_id, b_id) is True
    assert await teams.add_member(team_id, b_id) is False
    assert await teams.add_member(team_id, a_id) is False

    rows = await _count(
        db,
        select(func.count(TeamMember.id)).where(TeamMember.team_id == team_id),
    )
    assert rows == 2


@pytest.mark.asyncio
async def test_find_by_member(db, settings):
    a_id = await _user_id(db, settings, "a@x.com")
    loner_id = await _user_id(db, settings, "loner@x.com")
    teams = TeamDirectory(db)
    team_id = (await teams.find_or_create("Acme", a_id)).id

    assert (await teams.find_by_member(a_id)).id == team_id
    assert await teams.find_by_member(loner_id) is None
    assert await teams.find_by_member("not-a-uuid") is None


@pytest.mark.asyncio
async def test_remove_member(db, settings):
    a_id = await _user_id(db, settings, "a@x.com")
    b_id = await _user_id(db, settings, "b@x.com")
    teams = TeamDirectory(db)
    team_id = (await teams.find_or_create("Acme", a_id)).id
    await teams.add_member(team_id, b_id)

    await teams.remove_member(team_id, b_id)

    assert not await teams.is_member(team_id, b_id)
    assert await teams.is_member(team_id, a_id)


@pytest.mark.asyncio
async def test_delete_if_empty_spares_teams_with_members(db, settings):
    a_id = await _user_id(db, settings, "a@x.com")
    teams = TeamDirectory(db)
    team, created = await teams.find_or_create_flagged("Acme", a_id)
    team_id = team.id
    assert created
    assert (await teams.find_or_create_flagged("Acme", a_id))[1] is False

    assert await teams.delete_if_empty(team_id) is False
    assert await teams.get(team_id) is not None

    await teams.remove_member(team_id, a_id)
    assert await teams.delete_if_empty(team_id) is True
    assert await teams.get(team_id) is None
    assert await teams.find_by_name("Acme") is None


# ═══════════════════════════════════════════════════════════
# Concurrent writers
# ═══════════════════════════════════════════════════════════


async def _race_find_or_create(factory, settings, n: int) -> None:
    """N sessions race to create the same team; exactly one row survives."""
    async with factory() as s:
        user_ids = [await _user_id(s, settings, f"u{i}@x.com") for i in range(n)]

    async def confirm(user_id):
        async with factory() as s:
            teams = TeamDirectory(s)
            team = await teams.find_or_create("Acme", user_id)
            team_id = team.id
            await teams.add_member(team_id, user_id)
            return team_id

    team_ids = await asyncio.gather(*(confirm(uid) for uid in user_ids))
    assert len(set(team_ids)) == 1

    async with factory() as s:
        assert await _count(s, select(func.count(Team.id))) == 1
        assert await _count(s, select(func.count(TeamMember.id))) == n


@pytest.mark.asyncio
async def test_concurrent_find_or_create_yields_one_team(session_factory, settings):
    await _race_find_or_create(session_factory, settings, 6)


PG_URL = os.environ.get("TASKHUB_TEST_POSTGRES_URL")


@pytest.mark.asyncio
@pytest.mark.skipif(not PG_URL, reason="set TASKHUB_TEST_POSTGRES_URL to run")
async def test_concurrent_find_or_create_on_postgres(settings):
    engine = create_async_engine(PG_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        await _race_find_or_create(factory, settings, 8)
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()
