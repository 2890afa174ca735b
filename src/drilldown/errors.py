"""Exception types for drilldown.

compile-time errors are raised before any sql text exists, so callers can
reject a bad request without touching a database. the extra builtin bases
(KeyError, ValueError, RuntimeError) keep plain `except ValueError` callers working.
"""


class DrilldownError(Exception):
    """Base class for everything drilldown raises on purpose."""


class UnknownDimension(DrilldownError, KeyError):
    """A dimension id in the request isn't in the registry."""

    def __init__(
        self, dimension: str, source: str | None = None, detail: str | None = None
    ) -> None:
        self.dimension = dimension
        self.source = source
        message = f"Unknown dimension: {dimension}"
        if source:
            message += f" in source '{source}'"
        if detail:
            message += f" ({detail})"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError.__str__ wraps the message in quotes, which reads badly in the cli
        return self.args[0]


class InvalidDepth(DrilldownError, ValueError):
    """Depth outside [0, len(dimensions)) in depth-recursive mode."""


class MalformedAncestorFilters(DrilldownError, ValueError):
    """Ancestor filters don't line up with the requested dimension order."""


class ExecutionFailure(DrilldownError, RuntimeError):
    """The database rejected or failed a compiled query.

    raised by the executor only - the compilers never produce it.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)
