"""Errors raised at the ingestion boundary."""


class InvalidCategory(ValueError):
    """Observation category is empty or not a recognized vital sign.

    Callers must not retry with the same arguments.
    """

    def __init__(self, category: object) -> None:
        self.category = category
        super().__init__(f"Unrecognized observation category: {category!r}")


class MalformedInput(ValueError):
    """A feed line could not be parsed into an observation."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")
