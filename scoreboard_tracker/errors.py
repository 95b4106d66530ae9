"""Exceptions raised by the scoreboard tracker."""


class ScoreboardError(Exception):
    """Base class for all scoreboard tracker errors."""


class BadFilenameError(ScoreboardError):
    """The log filename does not decode to a decimal timestamp."""

    def __init__(self, filename: str):
        super().__init__(f"Non-numeric filename: {filename}")
        self.filename = filename


class MalformedDirectiveError(ScoreboardError):
    """A directive line carries too few fields to be used."""

    def __init__(self, line_number: int, line: str):
        super().__init__(f"Malformed directive at line {line_number}: {line!r}")
        self.line_number = line_number
        self.line = line


class StoreUnavailableError(ScoreboardError):
    """The store was used before its engine was opened."""


class PersistenceError(ScoreboardError):
    """Writing the database snapshot to the blob store failed."""
