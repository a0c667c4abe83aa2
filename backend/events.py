"""Inbound client events.

Each WebSocket message is a JSON object tagged by ``type``; it is parsed into
one of the models below and handed to the session manager.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinEvent(_Event):
    type: Literal["join"] = "join"
    session_code: Optional[str] = Field(default=None, alias="sessionCode")
    player_name: Any = Field(default="", alias="playerName")
    is_spectator: bool = Field(default=False, alias="isSpectator")

    @field_validator("session_code", mode="before")
    @classmethod
    def blank_code_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CastVoteEvent(_Event):
    type: Literal["castVote"] = "castVote"
    # Checked against the scale by the voting rules, so bad values surface as InvalidVote
    vote: Any = None


class ResetVotesEvent(_Event):
    type: Literal["resetVotes"] = "resetVotes"


class LeaveEvent(_Event):
    """Permanent leave: the player and their vote are removed."""
    type: Literal["leave"] = "leave"


class DisconnectEvent(_Event):
    """Synthesized by the transport when a socket closes."""
    type: Literal["disconnect"] = "disconnect"


InboundEvent = Annotated[
    Union[JoinEvent, CastVoteEvent, ResetVotesEvent, LeaveEvent, DisconnectEvent],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(InboundEvent)


def parse_event(message: dict):
    """Validate a decoded message. Raises ``pydantic.ValidationError``."""
    return _adapter.validate_python(message)
