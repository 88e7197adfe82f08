"""Exception hierarchy for the fuzzer.

Only SpecLoadError (and a bad base URL at startup) is fatal. Everything
else is scoped to a single payload and handled by the fuzz loop.
"""


class FuzzerError(Exception):
    """Base class for all fuzzer errors."""


class SpecLoadError(FuzzerError):
    """The API description could not be read, parsed or resolved."""

    def __init__(self, message: str, location: str | None = None):
        self.location = location
        if location:
            message = f"{message} (at {location})"
        super().__init__(message)


class GenerationError(FuzzerError):
    """A value could not be synthesized for a schema."""


class UnsupportedSchemaError(GenerationError):
    """The schema kind has no generator (oneOf, anyOf, allOf, any)."""

    def __init__(self, kind: str, ref: str | None = None):
        self.kind = kind
        self.ref = ref
        where = f" at {ref}" if ref else ""
        super().__init__(f"unsupported schema kind '{kind}'{where}")


class RequestBuildError(FuzzerError):
    """A concrete HTTP request could not be assembled from a payload."""
