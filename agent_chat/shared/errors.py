"""
MODULE OVERVIEW:
Exception hierarchy shared by the client, the chat session and the CLI.

Only transport-level and stream-level failures ever reach a caller. Frame-level
problems (bad JSON, unknown event types, results for unknown tool calls) are
absorbed inside the stream pipeline and never become exceptions.
"""


class AgentChatError(Exception):
    """Base class for every error this package reports."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(AgentChatError):
    """The request could not be issued, or the server answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamError(AgentChatError):
    """The server reported a `stream.error` event."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class FileValidationError(AgentChatError):
    pass


class SessionBusyError(AgentChatError):
    pass
