from __future__ import annotations


class CallsetError(Exception):
    """Base class for every error reported by callset."""


class CallSpecError(CallsetError, ValueError):
    """Malformed call signature text."""


class LoaderError(CallsetError):
    """The sources could not be loaded into compilation units."""


class ResolutionError(CallsetError):
    """A call expression could not be classified with the available type information."""

    def __init__(self, message: str, filename: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename

    def with_file(self, filename: str) -> ResolutionError:
        if self.filename:
            return self
        return ResolutionError(self.message, filename)

    def __str__(self) -> str:
        if self.filename:
            return f"{self.message}. Source file: {self.filename}"
        return self.message
