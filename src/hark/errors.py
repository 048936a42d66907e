"""Exception taxonomy for the assistant.

Only FatalStartupFailure is allowed to end the process. Everything else is
caught at the coordinator boundary and turned into a spoken response or a
silent return to listening.
"""


class HarkError(Exception):
    """Base class for all assistant errors."""


class RecoverableAudioFault(HarkError):
    """Frame drop or device glitch; capture resumes immediately."""


class RecognitionFault(HarkError):
    """The speech decoder failed; the recognizer must be reset."""


class DispatchFailure(HarkError):
    """An action handler raised or reported an error."""

    def __init__(self, action_id: str, message: str) -> None:
        super().__init__(f"{action_id}: {message}")
        self.action_id = action_id


class CatalogError(HarkError):
    """A catalog entry is malformed."""


class FatalStartupFailure(HarkError):
    """Missing model, empty catalog or unavailable device."""
