"""
Exceptions raised by the tutoring sessions.

The taxonomy mirrors how failures are contained:

    AuthorizationError: the handshake lacks a required identifier.
        The connection is refused before any resolution takes place.
    ExternalProviderError: a language model or retriever call failed.
        Reported to the peer as an error event for the exchange; the
        session stays open.
    PersistenceError: a transcript or document write failed. Logged
        only, the response was already streamed.
    SessionStateError: an operation was requested in a state (or a
        session mode) that does not accept it.
"""


class TutorChatError(Exception):
    """Base class of all errors raised by tutorchat."""


class AuthorizationError(TutorChatError):
    """A required session identifier is missing from the handshake."""


class ExternalProviderError(TutorChatError):
    """A model or retriever call failed."""


class PersistenceError(TutorChatError):
    """A write to the transcript or document store failed."""


class SessionStateError(TutorChatError):
    """The session cannot accept the operation in its current state."""
