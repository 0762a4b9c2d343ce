# clickauction/domain/round/engine.py
"""
The authoritative game engine.

Owns the round phase, the live player table, reconnection sessions, the
click guards and the all-time standings. Everything here is synchronous and
runs on the event loop thread: message handlers and timer callbacks take
turns, so no locking is needed. Nothing in here awaits.

Timer discipline: the engine holds at most one round timer. `_arm_tick()`
cancels the previous handle before arming, and every callback carries the
epoch it was armed in, so a callback from an earlier round can never touch
the current one.
"""
from __future__ import annotations

import secrets
from typing import Callable, Dict, Iterable, Optional, Tuple

from clickauction.domain.common.fsm import can_transition_to, next_on_timer
from clickauction.domain.common.timers import Scheduler, TimerHandle
from clickauction.domain.common.types import Phase, RUNNING_PHASES, TIMED_PHASES
from clickauction.domain.common.validation import (
    clamp_countdown,
    clamp_seconds,
    clamp_stage1_duration,
    sanitize_text,
    unique_name,
)
from clickauction.domain.helpers import ClickRateLimiter, TimingAnomalyDetector
from clickauction.domain.round.scoring import final_leaderboard, live_leaderboard, pick_winner
from clickauction.domain.session import SessionStore
from clickauction.domain.stats import AllTimeStats
from clickauction.logging_config import get_logger
from clickauction.settings import Settings
from clickauction.store.models import AllTimeRecord, LeaderboardEntry, PlayerStore, WinnerStore
from clickauction.transport.protocols import OutGameState
from clickauction.util.timeutil import monotonic_ms

logger = get_logger(__name__)

StatePublisher = Callable[[dict], None]
StatsPersister = Callable[[Dict[str, AllTimeRecord], bool], None]

PLAYER_COLORS: Tuple[str, ...] = (
    "#00C9A7", "#E91E8C", "#6B3FA0", "#00D4D4", "#FFB800",
    "#00E896", "#FF6B9D", "#4ECDC4", "#9B59B6", "#3498DB",
    "#F39C12", "#1ABC9C", "#E74C8C", "#00BCD4", "#8E44AD",
    "#2ECC71", "#E91E63", "#00ACC1", "#AB47BC", "#26A69A",
    "#FF5733", "#33FF57", "#3357FF", "#FF33F5", "#F5FF33",
    "#33FFF5", "#FF8C33", "#8CFF33", "#338CFF", "#FF338C",
    "#C70039", "#900C3F", "#581845", "#FFC300", "#DAF7A6",
    "#85C1E9", "#F1948A", "#82E0AA", "#F7DC6F", "#BB8FCE",
    "#73C6B6", "#F8B500", "#E74C3C", "#9B59B6", "#1ABC9C",
    "#2980B9", "#27AE60", "#F39C12", "#D35400", "#C0392B",
)


class GameEngine:
    def __init__(
        self,
        settings: Settings,
        *,
        scheduler: Scheduler,
        clock: Callable[[], float] = monotonic_ms,
        stats: Optional[AllTimeStats] = None,
        on_state: Optional[StatePublisher] = None,
        persist: Optional[StatsPersister] = None,
    ) -> None:
        self.settings = settings
        self.scheduler = scheduler
        self._clock = clock
        self._on_state = on_state
        self._persist = persist

        self.limiter = ClickRateLimiter(
            max_clicks=settings.MAX_CLICKS_PER_SECOND,
            window_ms=settings.RATE_WINDOW_MS,
            clock=clock,
        )
        self.detector = TimingAnomalyDetector(
            buffer_size=settings.INTERVAL_BUFFER_SIZE,
            min_samples=settings.MIN_INTERVALS_FOR_ANALYSIS,
            min_human_cv=settings.MIN_HUMAN_CV,
            clock=clock,
        )
        self.sessions = SessionStore(scheduler, grace_ms=settings.RECONNECT_GRACE_MS, clock=clock)
        self.stats = stats if stats is not None else AllTimeStats()

        # conn_id -> live player
        self.players: Dict[str, PlayerStore] = {}

        self.phase: Phase = "LOBBY"
        self.round_no = 0
        self.epoch = 0
        self.time_remaining = 0
        self.stage1_duration = clamp_stage1_duration(settings.STAGE1_DURATION_SEC)
        self.countdown_duration = clamp_countdown(settings.STAGE1_COUNTDOWN_SEC)
        self.stage2_countdown = clamp_countdown(settings.STAGE2_COUNTDOWN_SEC)
        self.stage2_window = clamp_seconds(settings.STAGE2_WINDOW_SEC, 1, 60)
        self.stage2_opened_at: Optional[float] = None

        self.winner: Optional[WinnerStore] = None
        self.final_board: Tuple[LeaderboardEntry, ...] = ()

        self._timer: Optional[TimerHandle] = None
        self._join_seq = 0
        self._color_index = 0

    # ----------------------------
    # Players
    # ----------------------------
    def is_full(self) -> bool:
        return len(self.players) >= self.settings.MAX_PLAYERS

    def get_player(self, conn_id: str) -> Optional[PlayerStore]:
        return self.players.get(conn_id)

    def add_player(self, conn_id: str, name: object, ad_message: object) -> Tuple[PlayerStore, str]:
        """
        Put a new participant in the live table and open their session.
        Capacity and duplicate joins are checked by the caller.
        Returns (player, session_token).
        """
        s = self.settings
        clean = sanitize_text(name, s.MAX_NAME_LENGTH) or f"Player-{conn_id[:4]}"
        clean = unique_name(clean, (p.name for p in self.players.values()), s.MAX_NAME_LENGTH)
        ad = sanitize_text(ad_message, s.MAX_AD_LENGTH) or f"{clean} wins! 🎉"

        self._join_seq += 1
        player = PlayerStore(
            player_id=secrets.token_hex(8),
            conn_id=conn_id,
            name=clean,
            color=self._next_color(),
            ad_message=ad,
            join_seq=self._join_seq,
            epoch=self.epoch,
        )
        self.players[conn_id] = player
        token = self.sessions.create_session(conn_id, player)
        logger.info("Player joined", player=clean, color=player.color, session=token[:12], players=len(self.players))
        return player, token

    def restore_player(self, conn_id: str, token: str) -> Optional[PlayerStore]:
        """
        Bring a disconnected player back under `conn_id`.
        Call `sessions.check_claim` first for a specific rejection reason.
        """
        player = self.sessions.restore(token, conn_id)
        if player is None:
            return None
        player.conn_id = conn_id
        if player.epoch != self.epoch:
            # Counters belong to a round that is gone
            player.reset_round(self.epoch)
        # Someone may have taken the name while this player was away
        player.name = unique_name(
            player.name, (p.name for p in self.players.values()), self.settings.MAX_NAME_LENGTH
        )
        self.players[conn_id] = player
        self.sessions.update_snapshot(conn_id, player)
        logger.info("Player reconnected", player=player.name, taps=player.taps, phase=self.phase)
        return player

    def remove_connection(self, conn_id: str) -> Optional[PlayerStore]:
        """
        Forget a closed connection. A player leaves the live table at once;
        their session keeps the counters for the grace period.
        """
        self.limiter.purge(conn_id)
        self.detector.purge(conn_id)
        player = self.players.pop(conn_id, None)
        if player is None:
            return None
        token = self.sessions.mark_disconnected(conn_id, player)
        if token:
            logger.info("Player disconnected (grace period)", player=player.name, taps=player.taps)
        else:
            logger.info("Player disconnected", player=player.name)
        return player

    def _next_color(self) -> str:
        color = PLAYER_COLORS[self._color_index % len(PLAYER_COLORS)]
        self._color_index += 1
        return color

    # ----------------------------
    # Clicks
    # ----------------------------
    def click(self, conn_id: str) -> bool:
        """
        Apply one tap. Returns True when visible state changed.
        Taps outside an active window, over the rate limit, or after a
        player's stage-2 reaction are dropped without a word.
        """
        player = self.players.get(conn_id)
        if player is None:
            return False

        if self.phase == "STAGE1_ACTIVE":
            if not self.limiter.check_and_record(conn_id):
                return False
            self.detector.record_click(conn_id)
            player.taps += 1
            verdict = self.detector.classify(conn_id)
            if verdict.suspicious and not player.suspicious:
                logger.warning("Suspicious click timing", player=player.name, cv=round(verdict.cv or 0.0, 4))
            player.suspicious = verdict.suspicious
            player.suspicion_reason = verdict.reason if verdict.suspicious else None
            return True

        if self.phase == "STAGE2_ACTIVE":
            if player.reaction_time_ms is not None:
                return False
            if not self.limiter.check_and_record(conn_id):
                return False
            opened = self.stage2_opened_at if self.stage2_opened_at is not None else self._clock()
            player.reaction_time_ms = max(0, int(self._clock() - opened))
            return True

        return False

    # ----------------------------
    # Host control
    # ----------------------------
    def round_running(self) -> bool:
        return self.phase in RUNNING_PHASES

    def start_round(self, duration: object = None, countdown: object = None) -> bool:
        """
        Begin a new round from LOBBY or FINISHED.
        Returns False (and changes nothing) while a round is running.
        """
        if self.round_running():
            return False

        self._cancel_timer()
        if duration is not None:
            self.stage1_duration = clamp_stage1_duration(duration)
        if countdown is not None:
            self.countdown_duration = clamp_countdown(countdown)

        self._new_epoch()
        self.round_no += 1
        logger.info(
            "Round starting",
            round=self.round_no,
            duration=self.stage1_duration,
            countdown=self.countdown_duration,
            players=len(self.players),
        )
        self._enter("STAGE1_COUNTDOWN")
        return True

    def reset_round(self) -> None:
        """Back to LOBBY from anywhere. Round number is kept."""
        self._cancel_timer()
        self._new_epoch()
        self._enter("LOBBY")
        logger.info("Round reset", round=self.round_no)

    def reset_all_time_stats(self) -> None:
        self.stats.clear()
        if self._persist is not None:
            self._persist(self.stats.records(), True)
        logger.warning("All-time stats reset by host")

    def _new_epoch(self) -> None:
        self.epoch += 1
        for p in self.players.values():
            p.reset_round(self.epoch)
        self.detector.clear()
        self.winner = None
        self.final_board = ()
        self.stage2_opened_at = None

    # ----------------------------
    # Phases & timers
    # ----------------------------
    def _enter(self, target: Phase) -> None:
        if not can_transition_to(self.phase, target):
            raise ValueError(f"Illegal phase transition {self.phase} -> {target}")

        previous = self.phase
        self.phase = target

        if target == "STAGE1_COUNTDOWN":
            self.time_remaining = self.countdown_duration
        elif target == "STAGE1_ACTIVE":
            self.time_remaining = self.stage1_duration
        elif target == "STAGE2_COUNTDOWN":
            self.time_remaining = self.stage2_countdown
        elif target == "STAGE2_ACTIVE":
            self.time_remaining = self.stage2_window
            self.stage2_opened_at = self._clock()
        else:
            self.time_remaining = 0

        if target == "FINISHED":
            self._finish()

        if target in TIMED_PHASES:
            self._arm_tick()
        else:
            self._cancel_timer()

        logger.debug("Phase changed", previous=previous, phase=target, round=self.round_no)

    def _arm_tick(self) -> None:
        self._cancel_timer()
        epoch = self.epoch
        delay = self.settings.TICK_INTERVAL_MS / 1000.0
        self._timer = self.scheduler.call_later(delay, lambda: self._on_tick(epoch))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self, epoch: int) -> None:
        if epoch != self.epoch or self.phase not in TIMED_PHASES:
            return
        self._timer = None
        self.time_remaining -= 1
        if self.time_remaining <= 0:
            nxt = next_on_timer(self.phase)
            if nxt is not None:
                self._enter(nxt)
        else:
            self._arm_tick()
        self.publish()

    def _finish(self) -> None:
        board = final_leaderboard(self.players.values(), self.settings.REACTION_MULTIPLIERS)
        self.final_board = board
        top = pick_winner(board)
        if top is not None:
            ad = next((p.ad_message for p in self.players.values() if p.player_id == top.id), "")
            self.winner = WinnerStore(entry=top, ad_message=ad)

        recorded = self.stats.record_round(board, top.id if top else None)
        if recorded and self._persist is not None:
            self._persist(self.stats.records(), False)

        logger.info(
            "Round finished",
            round=self.round_no,
            participants=len(board),
            winner=top.name if top else None,
            winning_score=top.final_score if top else None,
        )

    # ----------------------------
    # Broadcast view
    # ----------------------------
    def leaderboard(self) -> Iterable[LeaderboardEntry]:
        if self.phase == "FINISHED":
            return self.final_board
        return live_leaderboard(self.players.values())

    def game_state(self) -> OutGameState:
        """The one shared view every console receives."""
        winner = None
        winner_ad = None
        if self.phase == "FINISHED" and self.winner is not None:
            winner = self.winner.entry.model_dump(exclude={"join_seq"})
            winner_ad = self.winner.ad_message
        return OutGameState(
            status=self.phase,
            time_remaining=self.time_remaining,
            round=self.round_no,
            player_count=len(self.players),
            leaderboard=[e.model_dump(exclude={"join_seq"}) for e in self.leaderboard()],
            winner=winner,
            winner_ad=winner_ad,
            all_time_leaderboard=self.stats.leaderboard(self.settings.ALL_TIME_TOP_N),
        )

    def publish(self) -> None:
        if self._on_state is not None:
            self._on_state(self.game_state().model_dump())

    # ----------------------------
    # Housekeeping
    # ----------------------------
    def sweep_sessions(self) -> int:
        return self.sessions.sweep()

    def cleanup_stale(self, open_conn_ids: Iterable[str]) -> int:
        """Drop limiter/detector state for connections that are gone."""
        keep = set(open_conn_ids)
        return self.limiter.retain(keep) + self.detector.retain(keep)

    def shutdown(self) -> None:
        self._cancel_timer()
