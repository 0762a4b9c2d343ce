from clickauction.domain.session import SessionStore, generate_session_token
from clickauction.store.models import PlayerStore


class FakeTimer:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual clock + timer queue. `advance()` fires due timers in order."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def clock(self):
        return self.now

    def call_later(self, delay_sec, callback):
        t = FakeTimer(self.now + delay_sec * 1000.0, callback)
        self.timers.append(t)
        return t

    def advance(self, ms):
        target = self.now + ms
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            t = min(due, key=lambda x: x.when)
            self.timers.remove(t)
            self.now = t.when
            t.callback()
        self.now = target


def _player(**kw):
    data = dict(player_id="p1", conn_id="c1", name="Alice", color="#00C9A7", ad_message="hi", join_seq=1)
    data.update(kw)
    return PlayerStore(**data)


def test_token_format():
    token = generate_session_token()
    assert token.startswith("sess_")
    assert token != generate_session_token()


def test_restore_within_grace_keeps_counters():
    sched = FakeScheduler()
    store = SessionStore(sched, grace_ms=30_000, clock=sched.clock)
    token = store.create_session("c1", _player())

    store.mark_disconnected("c1", _player(taps=12))
    sched.advance(10_000)

    assert store.check_claim(token, "c2") == (True, "", "")
    restored = store.restore(token, "c2")
    assert restored is not None
    assert restored.taps == 12
    assert store.token_for("c2") == token
    assert store.disconnected_count() == 0

    # The grace timer was cancelled: nothing expires later
    sched.advance(60_000)
    assert store.get(token) is not None


def test_claim_while_connected_is_in_use():
    sched = FakeScheduler()
    store = SessionStore(sched, clock=sched.clock)
    token = store.create_session("c1", _player())

    ok, code, _ = store.check_claim(token, "c2")
    assert ok is False
    assert code == "SESSION_IN_USE"
    assert store.restore(token, "c2") is None


def test_unknown_or_malformed_token_is_invalid():
    sched = FakeScheduler()
    store = SessionStore(sched, clock=sched.clock)

    assert store.check_claim("sess_nope", "c1")[1] == "SESSION_INVALID"
    assert store.check_claim("", "c1")[1] == "SESSION_INVALID"
    assert store.check_claim(None, "c1")[1] == "SESSION_INVALID"
    assert store.check_claim(12345, "c1")[1] == "SESSION_INVALID"


def test_grace_timer_expires_session():
    sched = FakeScheduler()
    store = SessionStore(sched, grace_ms=30_000, clock=sched.clock)
    token = store.create_session("c1", _player())
    store.mark_disconnected("c1")

    sched.advance(30_000)

    assert store.get(token) is None
    ok, code, message = store.check_claim(token, "c2")
    assert ok is False
    assert code == "SESSION_EXPIRED"
    assert message == "Session expired"


def test_expired_by_clock_even_if_timer_never_fired():
    sched = FakeScheduler()
    store = SessionStore(sched, grace_ms=30_000, clock=sched.clock)
    token = store.create_session("c1", _player())
    store.mark_disconnected("c1")

    # Move the clock without firing timers
    sched.now = 30_000

    assert store.check_claim(token, "c2")[1] == "SESSION_EXPIRED"
    assert store.restore(token, "c2") is None


def test_sweep_expires_past_grace_and_forgets_tombstones():
    sched = FakeScheduler()
    store = SessionStore(sched, grace_ms=1_000, clock=sched.clock)
    t1 = store.create_session("c1", _player())
    store.create_session("c2", _player(player_id="p2", conn_id="c2", name="Bob", join_seq=2))
    store.mark_disconnected("c1")

    sched.now = 1_500
    assert store.sweep() == 1
    assert len(store) == 1
    assert store.check_claim(t1, "c9")[1] == "SESSION_EXPIRED"

    # Long after: the tombstone is gone too
    sched.now = 1_500 + 11 * 60 * 1000
    store.sweep()
    assert store.check_claim(t1, "c9")[1] == "SESSION_INVALID"


def test_disconnect_again_rearms_single_timer():
    sched = FakeScheduler()
    store = SessionStore(sched, grace_ms=30_000, clock=sched.clock)
    token = store.create_session("c1", _player())

    store.mark_disconnected("c1")
    sched.advance(20_000)
    store.restore(token, "c2")
    store.mark_disconnected("c2")

    # 20 s + 20 s: past the first disconnect's grace, inside the second's
    sched.advance(20_000)
    assert store.get(token) is not None
    sched.advance(10_000)
    assert store.get(token) is None


def test_mark_disconnected_unknown_conn():
    sched = FakeScheduler()
    store = SessionStore(sched, clock=sched.clock)
    assert store.mark_disconnected("ghost") is None
    assert sched.timers == []
