import random

import pytest

from conftest import make_session, settle
from engine.errors import ActionRejected, ParticipantNotFound, SessionNotFound
from engine.lifecycle import CODE_ALPHABET, LifecycleOutcome, SessionLifecycleManager, assign_color
from engine.session_locks import SessionLocks
from engine.timer_registry import TimerRegistry
from models.game import PALETTE, Participant, Phase, PlayerColor, Role


def _participant(pid: str, color: PlayerColor = PlayerColor.RED) -> Participant:
    return Participant(id=pid, name=pid.title(), color=color)


# ── Colors and codes ──────────────────────────────────────────────────────────

def test_assign_color_takes_first_unused():
    existing = [_participant("a", PlayerColor.RED), _participant("b", PlayerColor.GREEN)]
    assert assign_color(existing) == PlayerColor.BLUE


def test_assign_color_when_palette_exhausted():
    existing = [_participant(str(i), color) for i, color in enumerate(PALETTE)]
    assert assign_color(existing, random.Random(1)) in PALETTE


def test_generate_code_shape():
    manager = SessionLifecycleManager(store=None, registry=TimerRegistry(), locks=SessionLocks())
    code = manager.generate_code()
    assert len(code) == 6
    assert all(ch in CODE_ALPHABET for ch in code)


# ── Create / join ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_session_makes_host_sole_participant(store, lifecycle):
    session = await lifecycle.create_session("h1", "Hana")

    assert session.phase == Phase.LOBBY
    assert session.round == 0
    assert session.host_id == "h1"
    assert list(session.participants) == ["h1"]
    assert session.participants["h1"].color == PALETTE[0]
    assert (await store.get(session.code)).model_dump() == session.model_dump()


@pytest.mark.asyncio
async def test_create_session_retries_on_code_collision(store, lifecycle):
    first = await lifecycle.create_session("h1", "Hana")
    taken = first.code
    codes = iter([taken, taken, "FRESH1"])
    lifecycle.generate_code = lambda length=None: next(codes)

    second = await lifecycle.create_session("h2", "Hugo")

    assert second.code == "FRESH1"
    assert (await store.get(taken)).host_id == "h1"


@pytest.mark.asyncio
async def test_join_adds_participant_with_next_color(store, lifecycle):
    session = await lifecycle.create_session("h1", "Hana")

    joined = await lifecycle.join(session.code, "p2", "Pablo")

    assert list(joined.participants) == ["h1", "p2"]
    assert joined.participants["p2"].color == PALETTE[1]
    assert "p2" in (await store.get(session.code)).participants


@pytest.mark.asyncio
async def test_rejoin_is_idempotent(store, lifecycle):
    session = await lifecycle.create_session("h1", "Hana")
    await lifecycle.join(session.code, "p2", "Pablo")
    puts = store.puts

    again = await lifecycle.join(session.code, "p2", "Other name")

    assert again.participants["p2"].name == "Pablo"
    assert len(again.participants) == 2
    assert store.puts == puts


@pytest.mark.asyncio
async def test_thirteenth_participant_is_refused(store, lifecycle):
    session = make_session(names=tuple(f"p{i}" for i in range(12)))
    await store.put(session)

    result = await lifecycle.join(session.code, "late", "Late")

    assert result is LifecycleOutcome.FULL
    assert len((await store.get(session.code)).participants) == 12


@pytest.mark.asyncio
async def test_join_refused_during_round(store, lifecycle):
    session = make_session(phase=Phase.DISCUSSION)
    await store.put(session)

    with pytest.raises(ActionRejected) as exc:
        await lifecycle.join(session.code, "late", "Late")
    assert exc.value.code == "GAME_IN_PROGRESS"


@pytest.mark.asyncio
async def test_participant_can_reconnect_during_round(store, lifecycle):
    session = make_session(phase=Phase.VOTING)
    await store.put(session)
    result = await lifecycle.join(session.code, "ana", "Ana")
    assert "ana" in result.participants


@pytest.mark.asyncio
async def test_join_during_results_gets_player_role(store, lifecycle):
    session = make_session(phase=Phase.RESULTS)
    await store.put(session)

    result = await lifecycle.join(session.code, "late", "Late")

    assert result.participants["late"].role == Role.PLAYER


@pytest.mark.asyncio
async def test_join_unknown_session(lifecycle):
    with pytest.raises(SessionNotFound):
        await lifecycle.join("ZZZZZZ", "p", "P")


@pytest.mark.asyncio
async def test_add_participant_respects_capacity(store, lifecycle):
    session = make_session(names=tuple(f"p{i}" for i in range(12)))
    await store.put(session)
    assert await lifecycle.add_participant(session.code, _participant("x")) is LifecycleOutcome.FULL


# ── Leave / delete ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_host_leaving_passes_host_then_last_leave_deletes(store, lifecycle):
    session = await lifecycle.create_session("h1", "Hana")
    await lifecycle.join(session.code, "p2", "Pablo")

    remaining = await lifecycle.remove_participant(session.code, "h1")
    assert list(remaining.participants) == ["p2"]
    assert remaining.host_id == "p2"

    result = await lifecycle.remove_participant(session.code, "p2")
    assert result is LifecycleOutcome.DELETED
    assert await store.get(session.code) is None


@pytest.mark.asyncio
async def test_host_goes_to_earliest_remaining_participant(store, lifecycle):
    session = make_session(names=("host", "zed", "amy"))
    await store.put(session)

    remaining = await lifecycle.remove_participant(session.code, "host")

    assert remaining.host_id == "zed"


@pytest.mark.asyncio
async def test_impostor_leaving_clears_impostor(store, lifecycle):
    session = make_session(phase=Phase.DISCUSSION)
    session.impostor_id = "bob"
    session.participants["bob"].role = Role.IMPOSTOR
    session.clues = {"bob": "mueble"}
    await store.put(session)

    remaining = await lifecycle.remove_participant(session.code, "bob")

    assert remaining.impostor_id is None
    assert remaining.clues == {"bob": "mueble"}


@pytest.mark.asyncio
async def test_remove_unknown_participant(store, lifecycle):
    session = make_session()
    await store.put(session)
    with pytest.raises(ParticipantNotFound):
        await lifecycle.remove_participant(session.code, "ghost")


@pytest.mark.asyncio
async def test_last_leave_stops_running_timer(store, registry, lifecycle, clock):
    session = make_session(names=("solo",), phase=Phase.CLUES, time_left=50)
    await store.put(session)
    registry.start(session.code, lambda: clock.sleep(1000))
    await settle()

    await lifecycle.remove_participant(session.code, "solo")
    await settle()

    assert not registry.is_active(session.code)


@pytest.mark.asyncio
async def test_delete_session(store, registry, lifecycle, clock):
    session = make_session(phase=Phase.CLUES)
    await store.put(session)
    registry.start(session.code, lambda: clock.sleep(1000))
    await settle()

    assert await lifecycle.delete_session(session.code) is True
    assert await store.get(session.code) is None
    assert not registry.is_active(session.code)
    assert await lifecycle.delete_session(session.code) is False
