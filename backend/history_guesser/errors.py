class GameError(Exception):
    """Base class for engine errors."""

    code = "GAME_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GameError):
    """Malformed guess, year or coordinates; rejected before scoring."""

    code = "VALIDATION_ERROR"


class SubjectFetchError(GameError):
    """Round subjects could not be loaded. Fatal to session start."""

    code = "SUBJECT_FETCH_ERROR"


class PersistenceError(GameError):
    """Snapshot or result could not be written. Play continues in memory."""

    code = "PERSISTENCE_ERROR"


class TimingError(GameError):
    """A round was finalised twice. Logged and ignored."""

    code = "TIMING_ERROR"


class InvalidTransition(GameError):
    """An action was dispatched in a state that does not accept it."""

    code = "INVALID_TRANSITION"


class OperationCancelled(GameError):
    """A suspending operation was cancelled before it could commit."""

    code = "CANCELLED"
