"""Domain errors raised by Vocalyn services."""


class VocalynError(Exception):
    """Base class for all Vocalyn domain errors."""

    message = "Vocalyn error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class BackendUnavailable(VocalynError):
    """The generation backend failed or could not be reached."""

    message = "AI service unavailable"


class MalformedNotePayload(BackendUnavailable):
    """The transcript result did not match the expected note shape."""

    message = "Failed to get a valid response from the AI service"


class MalformedCitationPayload(VocalynError):
    """The JSON after the sources separator could not be parsed."""

    message = "Malformed citation payload"


class NotAuthenticated(VocalynError):
    """A write was attempted without an active user identity."""

    message = "User not authenticated"


class EmptyInput(VocalynError):
    """A question or transcript was blank."""

    message = "Input cannot be empty"


class ExchangeInFlight(VocalynError):
    """Another question is already being answered for this session."""

    message = "A question is already in progress for this session"


class ExchangeCancelled(VocalynError):
    """The caller cancelled the exchange while the answer was streaming."""

    message = "Exchange cancelled"
