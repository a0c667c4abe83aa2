"""Planning poker voting rules.

Pure functions over ``Session`` and ``Player`` records: they never touch the
store, the registry or a socket. The store hands them private copies, so
mutating helpers still return fresh objects via ``dataclasses.replace``.
"""

from dataclasses import replace
from typing import Optional
import re
import time

import config
from errors import InvalidName, InvalidVote, NameTaken, NotInSession, SpectatorCannotVote
from models import Player, Session


# --- Validation ---

def clean_player_name(raw) -> str:
    if not isinstance(raw, str):
        raise InvalidName()
    name = re.sub(r'<[^>]+>', '', raw).strip()
    if not name or len(name) > config.MAX_PLAYER_NAME_LENGTH:
        raise InvalidName(f"Player name must be 1-{config.MAX_PLAYER_NAME_LENGTH} characters")
    return name


def validate_vote(vote) -> int:
    # bool is an int subclass; True must not pass as a vote of 1
    if isinstance(vote, bool) or not isinstance(vote, int) or vote not in config.VOTE_SCALE:
        raise InvalidVote()
    return vote


# --- Transitions ---

def join_player(existing: Optional[Player], name: str, is_spectator: bool,
                held_by_other: bool = False) -> Player:
    """Return the player record after a join.

    An existing entry is a reconnect and is returned unchanged, keeping its
    vote and its original spectator flag, unless another live connection
    still holds the name.
    """
    if existing is not None:
        if held_by_other:
            raise NameTaken(f'Player name "{name}" is already taken in this session')
        return existing
    return Player(name=name, is_spectator=is_spectator, joined_at=time.time())


def cast_vote(player: Optional[Player], vote: int) -> Player:
    if player is None:
        raise NotInSession()
    if player.is_spectator:
        raise SpectatorCannotVote()
    return replace(player, has_voted=True, vote=vote)


def auto_reveal(session: Session) -> Session:
    """Reveal once every non-spectator has voted. Never hides votes again."""
    voters = session.voters()
    if voters and all(p.has_voted for p in voters):
        session.votes_revealed = True
    return session


def reset_votes(session: Session) -> Session:
    session.players = {
        name: replace(p, has_voted=False, vote=None)
        for name, p in session.players.items()
    }
    session.votes_revealed = False
    return session


def has_consensus(session: Session) -> bool:
    if not session.votes_revealed:
        return False
    votes = [p.vote for p in session.voters() if p.has_voted]
    if not votes:
        return False
    return all(v == votes[0] for v in votes)


# --- Wire projection ---

def project_player(player: Player, revealed: bool) -> dict:
    return {
        "hasVoted": player.has_voted,
        "vote": player.vote if revealed else None,
        "isSpectator": player.is_spectator,
    }


def project_state(session: Session) -> dict:
    return {
        "players": {name: project_player(p, session.votes_revealed)
                    for name, p in session.players.items()},
        "votesRevealed": session.votes_revealed,
        "hasConsensus": has_consensus(session),
    }


# --- Outbound messages ---

def share_url(session_code: str) -> str:
    return f"{config.FRONTEND_URL}?session={session_code}"


def state_update_message(session: Session) -> dict:
    return {"type": "stateUpdate", **project_state(session)}


def joined_message(session_code: str, player: Player) -> dict:
    return {
        "type": "joined",
        "sessionCode": session_code,
        "playerName": player.name,
        "isSpectator": player.is_spectator,
        "shareUrl": share_url(session_code),
    }


def votes_reset_message() -> dict:
    return {"type": "votesReset"}


def player_left_message(player_name: str) -> dict:
    return {"type": "playerLeft", "playerName": player_name}


def session_ended_message(reason: str) -> dict:
    return {"type": "sessionEnded", "reason": reason}
