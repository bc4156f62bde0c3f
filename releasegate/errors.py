"""Exception taxonomy for the decision engine.

Expected domain outcomes (bad user patterns, missing disk information) are
reported as rejected decision entries; these exceptions mark the seams where
collaborators fail or the queue detects a lost race.
"""


class ReleaseGateError(Exception):
    """Base exception for decision engine errors."""

    pass


class TransientResourceError(ReleaseGateError):
    """A disk, profile or file lookup failed in a way that may succeed later."""

    pass


class MalformedUserPattern(ReleaseGateError):
    """A user-supplied /regex/ term does not compile."""

    def __init__(self, term: str, message: str):
        super().__init__(f"Invalid pattern {term!r}: {message}")
        self.term = term


class ConfigurationError(ReleaseGateError):
    """A required collaborator is not wired."""

    pass


class QueueStateConflict(ReleaseGateError):
    """A pending item was written concurrently (stale version or duplicate key)."""

    def __init__(self, key: str, message: str = "pending item changed concurrently"):
        super().__init__(f"{message}: {key}")
        self.key = key
