"""Session, player and connection records."""

from dataclasses import dataclass, field
from typing import Dict, Optional
import time


@dataclass
class Player:
    name: str
    is_spectator: bool = False
    has_voted: bool = False
    vote: Optional[int] = None
    joined_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "hasVoted": self.has_voted,
            "vote": self.vote,
            "isSpectator": self.is_spectator,
            "joinedAt": self.joined_at,
        }

    @classmethod
    def from_dict(cls, name: str, item: dict) -> "Player":
        return cls(
            name=name,
            is_spectator=bool(item["isSpectator"]),
            has_voted=bool(item["hasVoted"]),
            vote=item["vote"],
            joined_at=float(item["joinedAt"]),
        )


@dataclass
class Session:
    code: str
    players: Dict[str, Player] = field(default_factory=dict)
    votes_revealed: bool = False
    created_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)
    version: int = 0

    def voters(self) -> list:
        """Non-spectator players, the only ones counted for reveal and consensus."""
        return [p for p in self.players.values() if not p.is_spectator]

    def to_dict(self) -> dict:
        # The store owns the version; it is not part of the item.
        return {
            "sessionCode": self.code,
            "players": {name: p.to_dict() for name, p in self.players.items()},
            "votesRevealed": self.votes_revealed,
            "createdAt": self.created_at,
            "lastActivityAt": self.last_activity_at,
        }

    @classmethod
    def from_dict(cls, item: dict, version: int = 0) -> "Session":
        return cls(
            code=item["sessionCode"],
            players={name: Player.from_dict(name, p)
                     for name, p in item["players"].items()},
            votes_revealed=bool(item["votesRevealed"]),
            created_at=float(item["createdAt"]),
            last_activity_at=float(item["lastActivityAt"]),
            version=version,
        )


@dataclass(frozen=True)
class Binding:
    connection_id: str
    session_code: str
    player_name: str
    is_spectator: bool
    connected_at: float = field(default_factory=time.time, compare=False)
