"""Error taxonomy shared by the resolver, index, hub and web front."""

from __future__ import annotations


class MarkonError(Exception):
    """Base class for all markon errors."""


class NotFoundError(MarkonError):
    """A requested path or document does not exist."""


class ForbiddenError(MarkonError):
    """A requested path resolves outside the served root."""


class ParseError(MarkonError):
    pass


class QueryParseError(ParseError):
    """The search query could not be parsed by the index engine."""


class MessageParseError(ParseError):
    """A client frame on the live connection is malformed."""


class StorageError(MarkonError):
    """A durable write to the annotation store failed."""


class RenderError(MarkonError):
    """A document could not be rendered to HTML."""


class BackendError(MarkonError):
    """The watcher or the index engine failed internally."""
