"""Bull - Sessions

Binds transport connections to player identities.

A connection id (``sid``) changes on every reconnect; the player id does
not. On disconnect the session is detached from its connection and kept
for a grace period, during which a new connection can claim it with a
``reconnect_attempt``. If nobody claims it in time it is discarded; the
player stays in the lobby, marked disconnected, and can still reclaim the
seat later with a fresh session.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Callable, Awaitable

from .config import Config
from .errors import SessionNotFound
from .timers import TimerRegistry

logger = logging.getLogger(__name__)


@dataclass
class Session:
    player_id: str
    lobby_code: str
    joined_at: float = field(default_factory=time.time)
    last_seen_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"player_id": self.player_id, "lobby_code": self.lobby_code}


class SessionRegistry:

    def __init__(self, timers: Optional[TimerRegistry] = None, config=Config,
                 store: Optional[Dict[str, Session]] = None):
        self.by_sid: Dict[str, Session] = store if store is not None else {}
        self.detached: Dict[str, Session] = {}  # player_id -> session in grace period
        self.timers = timers if timers is not None else TimerRegistry()
        self.config = config
        self._on_expire: Optional[Callable[[Session], Awaitable[None]]] = None

    def set_expiry_callback(self, callback: Callable[[Session], Awaitable[None]]):
        """Called when a detached session outlives its grace period."""
        self._on_expire = callback

    @staticmethod
    def _grace_key(player_id: str) -> str:
        return f"grace:{player_id}"

    def bind(self, sid: str, player_id: str, lobby_code: str) -> Session:
        session = Session(player_id=player_id, lobby_code=lobby_code)
        self.by_sid[sid] = session
        return session

    def get(self, sid: str) -> Optional[Session]:
        return self.by_sid.get(sid)

    def require(self, sid: str) -> Session:
        session = self.by_sid.get(sid)
        if session is None:
            raise SessionNotFound()
        session.last_seen_at = time.time()
        return session

    def find_sid(self, player_id: str) -> Optional[str]:
        for sid, session in self.by_sid.items():
            if session.player_id == player_id:
                return sid
        return None

    def release(self, sid: str) -> Optional[Session]:
        """Forget a connection for good (explicit leave)."""
        return self.by_sid.pop(sid, None)

    def detach(self, sid: str) -> Optional[Session]:
        """Connection lost: keep the session for the grace period."""
        session = self.by_sid.pop(sid, None)
        if session is None:
            return None
        self.detached[session.player_id] = session
        self.timers.schedule(
            self._grace_key(session.player_id),
            self.config.RECONNECT_GRACE_SECONDS,
            lambda: self._expire(session.player_id)
        )
        logger.info(f"Session of {session.player_id} detached, waiting for reconnect")
        return session

    async def _expire(self, player_id: str):
        session = self.detached.pop(player_id, None)
        if session is None:
            return
        logger.info(f"Grace period over for {player_id} in lobby {session.lobby_code}")
        if self._on_expire:
            await self._on_expire(session)

    def reattach(self, sid: str, player_id: str, lobby_code: str) -> Session:
        """
        Claim a player's session with a new connection.

        Works for a session in its grace period and also for one still
        bound to an old connection the server has not noticed is gone.
        When nothing is held any more (grace period over) a fresh session
        is bound; the caller has already checked the seat exists.
        """
        old_sid = None
        session = self.detached.get(player_id)
        if session is None:
            old_sid = self.find_sid(player_id)
            if old_sid is None:
                logger.info(f"No held session for {player_id}, binding a new one")
                return self.bind(sid, player_id, lobby_code)
            session = self.by_sid[old_sid]
        if session.lobby_code != lobby_code:
            raise SessionNotFound("No session to resume in this lobby")

        if old_sid is None:
            del self.detached[player_id]
            self.timers.cancel(self._grace_key(player_id))
        else:
            del self.by_sid[old_sid]

        session.last_seen_at = time.time()
        self.by_sid[sid] = session
        return session

    def drop_lobby(self, lobby_code: str) -> int:
        """Forget every session of a destroyed lobby."""
        sids = [sid for sid, s in self.by_sid.items() if s.lobby_code == lobby_code]
        for sid in sids:
            del self.by_sid[sid]
        players = [pid for pid, s in self.detached.items() if s.lobby_code == lobby_code]
        for player_id in players:
            del self.detached[player_id]
            self.timers.cancel(self._grace_key(player_id))
        return len(sids) + len(players)

    def sids_in_lobby(self, lobby_code: str):
        return [sid for sid, s in self.by_sid.items() if s.lobby_code == lobby_code]

    def __len__(self):
        return len(self.by_sid) + len(self.detached)
