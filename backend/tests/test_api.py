import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from conftest import FixedWordProvider
from engine.dispatcher import ActionDispatcher
from engine.lifecycle import SessionLifecycleManager
from engine.phase_timer import PhaseTimer
from engine.round_engine import RoundEngine
from engine.session_locks import SessionLocks
from engine.timer_registry import TimerRegistry
from main import app
from models.game import Role
from services import game_runtime
from services.connection_manager import ConnectionManager
from services.stats_service import StatsService


@pytest.fixture
def client(monkeypatch, store, durable):
    registry = TimerRegistry()
    locks = SessionLocks()
    connections = ConnectionManager()
    engine = RoundEngine(FixedWordProvider())
    stats = StatsService(durable)
    timer = PhaseTimer(store, connections, registry, locks, engine, stats)
    runtime = game_runtime.GameRuntime(
        store=store,
        connections=connections,
        registry=registry,
        locks=locks,
        engine=engine,
        stats=stats,
        timer=timer,
        lifecycle=SessionLifecycleManager(store, registry, locks),
        dispatcher=ActionDispatcher(store, connections, engine, timer, locks, stats),
    )
    monkeypatch.setattr(game_runtime, "_runtime", runtime)
    with TestClient(app) as c:
        yield c


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_create_get_delete_game(client, store):
    created = client.post("/api/games", json={"host_id": "h1", "host_name": "Hana"})
    assert created.status_code == 201
    code = created.json()["code"]
    assert created.json()["game"]["host_id"] == "h1"

    fetched = client.get(f"/api/games/{code.lower()}")
    assert fetched.status_code == 200
    assert list(fetched.json()["participants"]) == ["h1"]

    assert client.delete(f"/api/games/{code}").status_code == 204
    assert client.get(f"/api/games/{code}").status_code == 404
    assert client.delete(f"/api/games/{code}").status_code == 404


def test_anonymous_view_hides_word(client, store):
    code = client.post("/api/games", json={"host_id": "h1", "host_name": "Hana"}).json()["code"]
    session = store.sessions[code]
    session.current_word = "mesa"
    session.current_category = "objetos"
    session.participants["h1"].role = Role.PLAYER

    game = client.get(f"/api/games/{code}").json()

    assert game["current_word"] is None
    assert game["current_category"] is None


def test_create_game_validates_body(client):
    assert client.post("/api/games", json={"host_id": "", "host_name": "x"}).status_code == 422


def test_stats_endpoints(client, durable):
    assert client.get("/api/stats/general").json()["total_games"] == 0
    assert client.get("/api/stats/impostor-wins?limit=5").json() == []
    assert client.get("/api/stats/players-wins").json() == []
    assert client.get("/api/stats/impostor/someone").json()["total_games"] == 0
    assert client.post("/api/stats/query", json={"winner": "players", "limit": 10}).json() == []
    assert client.post("/api/stats/query", json={"limit": 0}).status_code == 422


def test_websocket_join_and_ping(client):
    code = client.post("/api/games", json={"host_id": "h1", "host_name": "Hana"}).json()["code"]

    with client.websocket_connect(f"/ws/{code}?playerId=h1&playerName=Hana") as ws:
        assert ws.receive_json() == {"type": "joined_game", "code": code, "participant_id": "h1"}
        update = ws.receive_json()
        assert update["type"] == "game_updated"
        assert update["game"]["code"] == code
        assert ws.receive_json() == {"type": "action", "action": {"type": "player-joined", "participant_id": "h1"}}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_json({"type": "game_action", "data": {"type": "game-started"}})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "NOT_ENOUGH_PLAYERS"


def test_websocket_unknown_game_is_closed(client):
    with client.websocket_connect("/ws/NOPE00?playerId=p1&playerName=P") as ws:
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()


def _drain_join(ws):
    assert ws.receive_json()["type"] == "joined_game"
    assert ws.receive_json()["type"] == "game_updated"
    assert ws.receive_json()["action"]["type"] == "player-joined"


def test_reconnect_survives_stale_socket_closing(client, store):
    code = client.post("/api/games", json={"host_id": "h1", "host_name": "Hana"}).json()["code"]
    url = f"/ws/{code}?playerId=a1&playerName=Ana"

    first = client.websocket_connect(url).__enter__()
    _drain_join(first)

    with client.websocket_connect(url) as second:
        _drain_join(second)
        first.__exit__(None, None, None)

        assert list(store.sessions[code].participants) == ["h1", "a1"]

        second.send_json({"type": "game_action", "data": {"type": "game-started"}})
        assert second.receive_json()["code"] == "NOT_HOST"

    assert list(store.sessions[code].participants) == ["h1"]
