"""
Bull - Session Bridge
=====================

Connects the transport (python-socketio) to the game.

Every inbound action goes through ``handle``:

1. the caller's session is resolved (connection -> player + lobby);
2. the action is applied by ``LobbyRegistry`` or ``GameStateMachine``;
3. the resulting state is pushed to the lobby room as a full snapshot.

``handle`` is the only place where errors are caught. A rejected action
produces an ``error`` event for the caller alone; the rest of the lobby
never hears about it.

Handlers never await before their mutation is complete. The event loop
is single threaded, so that alone keeps two actions from interleaving
on the same lobby.
"""

import time
import logging
from typing import Optional, Dict, Callable, Awaitable, List, Tuple

from .config import Config
from .errors import BullError, InvalidPhase, NotHost, PlayerNotFound, ValidationError
from .game import GameStateMachine
from .lobbies import LobbyRegistry
from .models import GamePhase, Lobby, Round
from .questions import QuestionBank
from .schemas import (
    CreateLobbyPayload, JoinLobbyPayload, ReconnectPayload, SelectTeamPayload,
    StartGamePayload, SubmitAnswerPayload, SubmitVotePayload, parse
)
from .sessions import Session, SessionRegistry
from .timers import TimerRegistry

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = {"message": "Unexpected server error", "code": "UNKNOWN_ERROR"}


def room_for(code: str) -> str:
    return f"lobby_{code}"


def phase_timer_key(code: str) -> str:
    return f"phase:{code}"


class SessionBridge:
    """
    ``transport`` needs ``emit(event, data, to=None, skip_sid=None)``,
    ``enter_room(sid, room)`` and ``leave_room(sid, room)`` coroutines; a
    ``socketio.AsyncServer`` fits as is.
    """

    def __init__(
        self,
        transport,
        lobbies: Optional[LobbyRegistry] = None,
        game: Optional[GameStateMachine] = None,
        sessions: Optional[SessionRegistry] = None,
        timers: Optional[TimerRegistry] = None,
        config=Config
    ):
        self.transport = transport
        self.config = config
        self.timers = timers if timers is not None else TimerRegistry()
        self.lobbies = lobbies or LobbyRegistry(config=config)
        self.game = game or GameStateMachine(
            QuestionBank.from_file(config.QUESTIONS_PATH), config
        )
        self.sessions = sessions if sessions is not None else SessionRegistry(self.timers, config)
        self.started_at = time.time()

        self._closed: List[Tuple[str, str, List[str]]] = []
        self.lobbies.set_removal_callback(self._on_lobby_removed)
        self.sessions.set_expiry_callback(self._on_session_expired)

        self._handlers: Dict[str, Callable[[str, dict], Awaitable[None]]] = {
            "create_lobby": self._create_lobby,
            "join_lobby": self._join_lobby,
            "leave_lobby": self._leave_lobby,
            "select_team": self._select_team,
            "ready_toggle": self._ready_toggle,
            "start_game": self._start_game,
            "next_phase": self._next_phase,
            "reset_game": self._reset_game,
            "submit_answer": self._submit_answer,
            "player_ready": self._player_ready,
            "submit_vote": self._submit_vote,
            "reconnect_attempt": self._reconnect_attempt,
            "ping": self._ping,
        }

    @property
    def actions(self) -> List[str]:
        return list(self._handlers)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def handle(self, sid: str, action: str, payload=None):
        """Run one inbound action; the single error boundary."""
        handler = self._handlers.get(action)
        try:
            if handler is None:
                raise ValidationError(f"Unknown action: {action}")
            await handler(sid, payload if payload is not None else {})
        except BullError as e:
            logger.warning(f"{action} rejected for {sid}: {e.code} - {e.message}")
            await self._send(sid, "error", e.to_dict())
        except Exception:
            logger.exception(f"Unexpected error while handling {action} for {sid}")
            await self._send(sid, "error", dict(UNKNOWN_ERROR))

    async def disconnect(self, sid: str):
        """Connection dropped: keep the seat and start the grace period."""
        session = self.sessions.detach(sid)
        if session is None:
            return
        lobby = self.lobbies.mark_disconnected(session.lobby_code, session.player_id)
        if lobby is None:
            return
        logger.info(f"Player {session.player_id} disconnected from {lobby.code}")
        await self._broadcast_lobby(lobby)
        if lobby.game_state is not None:
            await self._broadcast_game(lobby)

    async def sweep(self) -> int:
        """Expire idle lobbies and tell whoever is still in them."""
        count = self.lobbies.cleanup_expired()
        await self._flush_closed()
        return count

    def stats(self) -> dict:
        data = self.lobbies.stats()
        data.update({
            "active_sessions": len(self.sessions),
            "active_timers": len(self.timers),
            "uptime_seconds": int(time.time() - self.started_at),
        })
        return data

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _send(self, sid: str, event: str, data: dict):
        await self.transport.emit(event, data, to=sid)

    async def _broadcast(self, code: str, event: str, data: dict, skip_sid: Optional[str] = None):
        await self.transport.emit(event, data, to=room_for(code), skip_sid=skip_sid)

    async def _broadcast_lobby(self, lobby: Lobby):
        await self._broadcast(lobby.code, "lobby_updated", {"lobby": lobby.to_dict()})

    def _game_snapshot(self, lobby: Lobby) -> dict:
        return {
            "game_state": lobby.game_state.to_dict() if lobby.game_state else None,
            "all_answers_in": self.game.all_answers_in(lobby),
            "all_ready": self.game.all_ready(lobby),
            "all_votes_in": self.game.all_votes_in(lobby),
        }

    async def _broadcast_game(self, lobby: Lobby):
        await self._broadcast(lobby.code, "game_state_updated", self._game_snapshot(lobby))

    def _context(self, sid: str) -> Tuple[Session, Lobby]:
        session = self.sessions.require(sid)
        return session, self.lobbies.require(session.lobby_code)

    @staticmethod
    def _require_host(session: Session, lobby: Lobby):
        if not lobby.is_host(session.player_id):
            raise NotHost()

    def _on_lobby_removed(self, code: str, reason: str):
        self.timers.cancel(phase_timer_key(code))
        sids = self.sessions.sids_in_lobby(code)
        self.sessions.drop_lobby(code)
        self._closed.append((code, reason, sids))

    async def _flush_closed(self, skip_sid: Optional[str] = None):
        closed, self._closed = self._closed, []
        for code, reason, sids in closed:
            await self._broadcast(code, "lobby_closed", {"code": code, "reason": reason},
                                  skip_sid=skip_sid)
            for sid in sids:
                await self.transport.leave_room(sid, room_for(code))

    async def _on_session_expired(self, session: Session):
        lobby = self.lobbies.get(session.lobby_code)
        if lobby is not None:
            await self._broadcast_lobby(lobby)

    # =========================================================================
    # LOBBY ACTIONS
    # =========================================================================

    async def _create_lobby(self, sid: str, payload: dict):
        data = parse(CreateLobbyPayload, payload)
        if self.sessions.get(sid) is not None:
            raise ValidationError("Leave your current lobby first", code="ALREADY_IN_LOBBY")

        lobby, host_id = self.lobbies.create(data.player_name)
        self.sessions.bind(sid, host_id, lobby.code)

        await self.transport.enter_room(sid, room_for(lobby.code))
        await self._send(sid, "lobby_created", {
            "lobby": lobby.to_dict(),
            "player_id": host_id,
            "is_host": True,
        })

    async def _join_lobby(self, sid: str, payload: dict):
        data = parse(JoinLobbyPayload, payload)
        if self.sessions.get(sid) is not None:
            raise ValidationError("Leave your current lobby first", code="ALREADY_IN_LOBBY")

        lobby, player = self.lobbies.join(data.code, data.player_name)
        self.sessions.bind(sid, player.id, lobby.code)

        await self.transport.enter_room(sid, room_for(lobby.code))
        await self._send(sid, "lobby_joined", {
            "lobby": lobby.to_dict(),
            "player_id": player.id,
            "player": player.to_dict(),
        })
        await self._broadcast(lobby.code, "player_joined", {"player": player.to_dict()},
                              skip_sid=sid)
        await self._broadcast_lobby(lobby)

    async def _leave_lobby(self, sid: str, payload: dict):
        session, lobby = self._context(sid)
        code = lobby.code

        remaining, was_host = self.lobbies.leave(code, session.player_id)
        self.sessions.release(sid)

        if remaining is None:
            await self.transport.leave_room(sid, room_for(code))
            await self._flush_closed(skip_sid=sid)
            return

        await self._broadcast(code, "player_left", {
            "player_id": session.player_id,
            "was_host": was_host,
            "host_id": remaining.host_id,
        })
        await self.transport.leave_room(sid, room_for(code))
        await self._broadcast_lobby(remaining)

    async def _select_team(self, sid: str, payload: dict):
        data = parse(SelectTeamPayload, payload)
        session, lobby = self._context(sid)

        player = self.lobbies.select_team(lobby.code, session.player_id, data.team)

        await self._broadcast(lobby.code, "team_updated", {
            "player_id": player.id,
            "team": player.team.value,
            "teams": {t.value: list(ids) for t, ids in lobby.teams.items()},
        })
        await self._broadcast_lobby(lobby)

    async def _ready_toggle(self, sid: str, payload: dict):
        session, lobby = self._context(sid)
        self.lobbies.toggle_ready(lobby.code, session.player_id)
        await self._broadcast_lobby(lobby)

    # =========================================================================
    # GAME ACTIONS
    # =========================================================================

    async def _start_game(self, sid: str, payload: dict):
        if isinstance(payload, dict) and payload and "settings" not in payload:
            payload = {"settings": payload}
        data = parse(StartGamePayload, payload)
        session, lobby = self._context(sid)
        self._require_host(session, lobby)
        self.lobbies.ensure_can_start(lobby.code)

        if data.settings is not None:
            self.lobbies.update_settings(lobby.code, session.player_id,
                                         data.settings.overrides())
        self.game.start(lobby)

        await self._broadcast(lobby.code, "game_started", {
            "lobby": lobby.to_dict(),
            "game_state": lobby.game_state.to_dict(),
        })

    async def _next_phase(self, sid: str, payload: dict):
        session, lobby = self._context(sid)
        self._require_host(session, lobby)
        await self._advance(lobby)

    async def _advance(self, lobby: Lobby):
        """Move the lobby's game one phase forward."""
        game = lobby.game_state
        if game is None:
            raise InvalidPhase("No game in progress")

        if game.phase is GamePhase.WAITING:
            round_ = self.game.begin_round(lobby, game.current_round)
            self.timers.cancel(phase_timer_key(lobby.code))
            await self._round_started(lobby, round_)
        elif game.phase is GamePhase.RESULTS:
            if self.game.is_finished(lobby):
                outcome = self.game.finish(lobby)
                self.timers.cancel(phase_timer_key(lobby.code))
                await self._broadcast(lobby.code, "game_finished", outcome)
            else:
                round_ = self.game.begin_round(lobby, game.current_round + 1)
                self.timers.cancel(phase_timer_key(lobby.code))
                await self._round_started(lobby, round_)
        elif game.phase is GamePhase.WRITING:
            options = self.game.prepare_voting_options(lobby)
            self.timers.cancel(phase_timer_key(lobby.code))
            self._schedule_advance(lobby, GamePhase.VOTING, lobby.settings.vote_time_seconds)
            await self._broadcast(lobby.code, "voting_phase", {
                "round_number": game.current_round,
                "options": [o.to_dict() for o in options],
                "time_limit": lobby.settings.vote_time_seconds,
            })
        elif game.phase is GamePhase.VOTING:
            result = self.game.close_round(lobby)
            self.timers.cancel(phase_timer_key(lobby.code))
            data = result.to_dict()
            data["round"] = game.get_current_round().to_dict()
            data["players"] = [p.to_dict() for p in lobby.players]
            data["is_last_round"] = self.game.is_finished(lobby)
            await self._broadcast(lobby.code, "round_results", data)
        else:
            raise InvalidPhase("Game already finished")

        await self._broadcast_game(lobby)

    async def _round_started(self, lobby: Lobby, round_: Round):
        self._schedule_advance(lobby, GamePhase.WRITING, lobby.settings.answer_time_seconds)
        selected = {}
        for team, player_id in round_.selected_players.items():
            player = lobby.get_player(player_id)
            selected[team.value] = {"id": player_id, "name": player.name if player else None}
        await self._broadcast(lobby.code, "round_started", {
            "round": round_.to_dict(),
            "round_number": round_.number,
            "total_rounds": lobby.game_state.total_rounds,
            "selected_players": selected,
            "time_limit": lobby.settings.answer_time_seconds,
        })

    def _schedule_advance(self, lobby: Lobby, phase: GamePhase, delay: int):
        if not lobby.settings.auto_advance:
            return
        code = lobby.code
        self.timers.schedule(phase_timer_key(code), delay,
                             lambda: self._auto_advance(code, phase))

    async def _auto_advance(self, code: str, expected: GamePhase):
        lobby = self.lobbies.get(code)
        if lobby is None or lobby.game_state is None or lobby.game_state.phase is not expected:
            return
        logger.info(f"Time is up in lobby {code}, advancing from {expected.value}")
        try:
            await self._advance(lobby)
        except BullError as e:
            logger.warning(f"Auto-advance failed in lobby {code}: {e.code} - {e.message}")

    async def _reset_game(self, sid: str, payload: dict):
        session, lobby = self._context(sid)
        self._require_host(session, lobby)

        self.timers.cancel(phase_timer_key(lobby.code))
        self.game.reset(lobby)

        await self._broadcast_game(lobby)
        await self._broadcast_lobby(lobby)

    async def _submit_answer(self, sid: str, payload: dict):
        data = parse(SubmitAnswerPayload, payload)
        session, lobby = self._context(sid)
        self.game.submit_answer(lobby, session.player_id, data.answer)
        await self._broadcast_game(lobby)

    async def _player_ready(self, sid: str, payload: dict):
        session, lobby = self._context(sid)
        self.game.mark_ready(lobby, session.player_id)
        await self._broadcast_game(lobby)

    async def _submit_vote(self, sid: str, payload: dict):
        data = parse(SubmitVotePayload, payload)
        session, lobby = self._context(sid)
        self.game.submit_vote(lobby, session.player_id, data.option_id)
        await self._broadcast_game(lobby)

    # =========================================================================
    # CONNECTION
    # =========================================================================

    async def _reconnect_attempt(self, sid: str, payload: dict):
        data = parse(ReconnectPayload, payload)
        lobby = self.lobbies.require(data.lobby_code)
        if not lobby.is_member(data.player_id):
            raise PlayerNotFound()
        current = self.sessions.get(sid)
        if current is not None and (current.player_id, current.lobby_code) != (data.player_id, lobby.code):
            raise ValidationError("Leave your current lobby first", code="ALREADY_IN_LOBBY")

        self.sessions.reattach(sid, data.player_id, lobby.code)
        self.lobbies.mark_connected(lobby.code, data.player_id)
        logger.info(f"Player {data.player_id} reconnected to {lobby.code}")

        player = lobby.get_player(data.player_id)
        await self.transport.enter_room(sid, room_for(lobby.code))
        await self._send(sid, "reconnected", {
            "lobby": lobby.to_dict(),
            "player_id": data.player_id,
            "player": player.to_dict() if player else None,
            "is_host": lobby.is_host(data.player_id),
        })
        await self._broadcast_lobby(lobby)

    async def _ping(self, sid: str, payload: dict):
        await self._send(sid, "pong", {"timestamp": time.time()})
