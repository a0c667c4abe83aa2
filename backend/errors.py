"""Domain errors for the planning poker core.

Every error is recoverable: it is reported to the connection that caused it
and never broadcast. The wire ``code`` is the class name.
"""


class PokerError(Exception):
    default_message = "Request failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_message(self) -> dict:
        return {"type": "error", "code": self.code, "message": self.message}


class InvalidName(PokerError):
    default_message = "Player name must be 1-20 characters"


class NameTaken(PokerError):
    default_message = "Player name is already taken in this session"


class NotInSession(PokerError):
    default_message = "Connection not found. Please rejoin the session."


class SpectatorCannotVote(PokerError):
    default_message = "Spectators cannot vote"


class InvalidVote(PokerError):
    default_message = "Invalid vote value. Must be: 1, 2, 3, 5, 8, or 13"


class NotSpectator(PokerError):
    default_message = "Only spectators can reset votes"


class SessionNotFound(PokerError):
    default_message = "Session not found"


class Conflict(PokerError):
    default_message = "Session is busy, please try again"


class AlreadyExists(Exception):
    """Raised by a store when creating a session whose code is taken."""
