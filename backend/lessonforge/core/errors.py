"""Error taxonomy for the generation pipeline.

Only ``AIError`` ever reaches a caller. The others are raised by a single
model call or a single parse and are either absorbed (backfill rounds, agent
checks) or translated into ``AIError`` by the orchestrator.
"""

AI_ERROR = "AI_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"


class ParseError(ValueError):
    """Model output contained no recoverable JSON object."""


class ServiceError(RuntimeError):
    """Transport or provider failure while calling the model."""


class ModelTimeoutError(ServiceError):
    """A model call did not finish within its timeout."""


class AIError(RuntimeError):
    """Opaque, user-facing generation failure.

    The message is always the stable code so that callers can match on
    ``str(exc)``; details live in the logs.
    """

    code = AI_ERROR

    def __init__(self) -> None:
        super().__init__(AI_ERROR)
