"""Error taxonomy for the generation client.

Every error is scoped to a single task role. None of them is allowed to leak
into another role's state or into the channel registry.
"""

from __future__ import annotations

from typing import Any


class ClientError(Exception):
    """Base class for all client-side failures."""

    @property
    def user_message(self) -> str:
        return str(self) or "An unexpected error occurred."


class ValidationError(ClientError):
    """Form or slot state rejected before any network call."""


class TransportError(ClientError):
    def __init__(self, message: str, status: int = 0, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url

    @property
    def user_message(self) -> str:
        return describe_status(self.status, str(self))


class SubmissionError(ClientError):
    """The backend accepted a submit call but returned no task id."""


class MediaResolveError(ClientError):
    def __init__(self, kind: str, index: int, cause: Exception | str) -> None:
        super().__init__(f"Failed to load {kind} {index + 1}: {cause}")
        self.kind = kind
        self.index = index
        self.cause = cause


class StreamProtocolError(ClientError):
    """A progress-channel payload could not be decoded."""


class ServerReportedError(ClientError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


def describe_status(status: int, fallback: str | None = None) -> str:
    if status == 400:
        return "Invalid generation parameters. Please check your inputs."
    if status in {408, 504}:
        return "Generation timed out. The request may be too complex - try simplifying or try again later."
    if status == 429:
        return "Server is busy. Please wait a moment and try again."
    if 500 <= status < 600:
        return "Server error during generation. Please try again later."
    if status == 0 and not fallback:
        return "Unable to connect to server. Please check your connection."
    return fallback or "Generation failed unexpectedly."
