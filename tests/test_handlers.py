import pytest

from clickauction.domain.lifecycle.handlers import handle_disconnect, handle_join, handle_rejoin
from clickauction.domain.round import GameEngine
from clickauction.settings import Settings
from clickauction.transport.dispatcher import dispatch_message
from clickauction.transport.protocols import InJoin, InRejoin


class FakeTimer:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    def __init__(self):
        self.now = 0.0
        self.timers = []

    def clock(self):
        return self.now

    def call_later(self, delay_sec, callback):
        t = FakeTimer(self.now + delay_sec * 1000.0, callback)
        self.timers.append(t)
        return t


class FakeApp:
    def __init__(self, **settings):
        self.scheduler = FakeScheduler()
        engine = GameEngine(Settings(**settings), scheduler=self.scheduler, clock=self.scheduler.clock)
        self.state = type("State", (), {"engine": engine})()


@pytest.mark.asyncio
async def test_join_creates_session_and_broadcasts_state():
    app = FakeApp()

    to_sender, to_room = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))

    assert to_sender[0].type == "session_created"
    assert to_sender[0].token.startswith("sess_")
    assert to_sender[0].player["name"] == "Alice"
    assert to_room[0].type == "game_state"
    assert to_room[0].player_count == 1


@pytest.mark.asyncio
async def test_join_twice_on_one_connection():
    app = FakeApp()
    await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))

    to_sender, to_room = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))
    assert to_sender[0].code == "ALREADY_JOINED"
    assert to_room == []


@pytest.mark.asyncio
async def test_join_when_full():
    app = FakeApp(MAX_PLAYERS=1)
    await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))

    to_sender, to_room = await handle_join(app=app, conn_id="c2", role="player", msg=InJoin(name="Bob"))
    assert to_sender[0].code == "GAME_FULL"
    assert to_sender[0].message == "Game is full! Maximum players reached."
    assert to_room == []


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["host", "display"])
async def test_only_player_connections_join(role):
    app = FakeApp()

    to_sender, to_room = await handle_join(app=app, conn_id="x1", role=role, msg=InJoin(name="Screen"))
    assert to_sender[0].code == "NOT_PLAYER"
    assert to_room == []
    assert app.state.engine.players == {}

    created, _ = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))
    await handle_disconnect(app=app, conn_id="c1")
    to_sender, _ = await handle_rejoin(app=app, conn_id="x1", role=role, msg=InRejoin(token=created[0].token))
    assert to_sender[0].code == "NOT_PLAYER"


@pytest.mark.asyncio
async def test_join_allowed_mid_round():
    app = FakeApp()
    app.state.engine.start_round()

    to_sender, _ = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Late"))
    assert to_sender[0].type == "session_created"


@pytest.mark.asyncio
async def test_rejoin_flow():
    app = FakeApp()
    created, _ = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))
    token = created[0].token
    player_id = created[0].player_id

    # Still connected elsewhere
    to_sender, _ = await handle_rejoin(app=app, conn_id="c2", role="player", msg=InRejoin(token=token))
    assert to_sender[0].code == "SESSION_IN_USE"

    _, to_room = await handle_disconnect(app=app, conn_id="c1")
    assert to_room[0].player_count == 0

    to_sender, to_room = await handle_rejoin(app=app, conn_id="c2", role="player", msg=InRejoin(token=token))
    assert to_sender[0].type == "rejoin_success"
    assert to_sender[0].player_id == player_id
    assert to_room[0].player_count == 1

    # Same connection trying again
    to_sender, _ = await handle_rejoin(app=app, conn_id="c2", role="player", msg=InRejoin(token=token))
    assert to_sender[0].code == "ALREADY_JOINED"


@pytest.mark.asyncio
async def test_rejoin_bad_and_expired_tokens():
    app = FakeApp()
    to_sender, _ = await handle_rejoin(app=app, conn_id="c9", role="player", msg=InRejoin(token="sess_unknown"))
    assert to_sender[0].code == "SESSION_INVALID"

    created, _ = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))
    await handle_disconnect(app=app, conn_id="c1")
    app.scheduler.now += 30_000

    to_sender, _ = await handle_rejoin(app=app, conn_id="c2", role="player", msg=InRejoin(token=created[0].token))
    assert to_sender[0].code == "SESSION_EXPIRED"
    assert to_sender[0].message == "Session expired"


@pytest.mark.asyncio
async def test_rejoin_refused_when_full():
    app = FakeApp(MAX_PLAYERS=1)
    created, _ = await handle_join(app=app, conn_id="c1", role="player", msg=InJoin(name="Alice"))
    await handle_disconnect(app=app, conn_id="c1")
    await handle_join(app=app, conn_id="c2", role="player", msg=InJoin(name="Bob"))

    to_sender, _ = await handle_rejoin(app=app, conn_id="c3", role="player", msg=InRejoin(token=created[0].token))
    assert to_sender[0].code == "GAME_FULL"


@pytest.mark.asyncio
async def test_disconnect_of_non_player_is_quiet():
    app = FakeApp()
    assert await handle_disconnect(app=app, conn_id="display-1") == ([], [])


@pytest.mark.asyncio
async def test_dispatch_bad_message():
    app = FakeApp()
    to_sender, to_room = await dispatch_message(app=app, conn_id="c1", role="player", raw={"type": "nope"})
    assert to_sender[0]["type"] == "error"
    assert to_sender[0]["code"] == "BAD_MESSAGE"
    assert to_room == []

    to_sender, _ = await dispatch_message(app=app, conn_id="c1", role="player", raw="click")
    assert to_sender[0]["code"] == "BAD_MESSAGE"


@pytest.mark.asyncio
async def test_dispatch_host_commands_need_host_role():
    app = FakeApp()
    for t in ("start_round", "reset_round", "reset_stats"):
        to_sender, to_room = await dispatch_message(app=app, conn_id="c1", role="player", raw={"type": t})
        assert to_sender[0]["code"] == "NOT_HOST"
        assert to_room == []
    assert app.state.engine.phase == "LOBBY"


@pytest.mark.asyncio
async def test_dispatch_start_round_as_host():
    app = FakeApp()
    to_sender, to_room = await dispatch_message(
        app=app, conn_id="h1", role="host", raw={"type": "start_round", "duration": 20, "countdown": 2}
    )
    assert to_sender == []
    assert to_room[0]["status"] == "STAGE1_COUNTDOWN"
    assert to_room[0]["time_remaining"] == 2

    to_sender, to_room = await dispatch_message(app=app, conn_id="h1", role="host", raw={"type": "start_round"})
    assert to_sender[0]["code"] == "ROUND_IN_PROGRESS"
    assert to_room == []

    _, to_room = await dispatch_message(app=app, conn_id="h1", role="host", raw={"type": "reset_round"})
    assert to_room[0]["status"] == "LOBBY"


@pytest.mark.asyncio
async def test_dispatch_click_is_silent_when_dropped():
    app = FakeApp()
    await dispatch_message(app=app, conn_id="c1", role="player", raw={"type": "join", "name": "Alice"})

    # LOBBY: no reply, no broadcast
    assert await dispatch_message(app=app, conn_id="c1", role="player", raw={"type": "click"}) == ([], [])


@pytest.mark.asyncio
async def test_dispatch_state_is_unicast():
    app = FakeApp()
    to_sender, to_room = await dispatch_message(app=app, conn_id="d1", role="display", raw={"type": "state"})
    assert to_sender[0]["type"] == "game_state"
    assert to_sender[0]["status"] == "LOBBY"
    assert to_room == []
