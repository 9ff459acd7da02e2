"""Error kinds raised by the ingestion core."""


class IngestError(Exception):
    """Base class for every error raised by the ingestion core."""


class ConfigurationError(IngestError):
    pass


class SourceUnavailable(IngestError):
    """The provider could not be reached or answered with an HTTP error."""

    def __init__(self, message, *, source=None, url=None, status=None):
        super().__init__(message)
        self.source = source
        self.url = url
        self.status = status


class SourceFormatError(SourceUnavailable):
    """The provider answered, but the payload is not shaped as expected."""

    def __init__(self, message, *, source=None, url=None, payload_excerpt=None):
        super().__init__(message, source=source, url=url)
        self.payload_excerpt = payload_excerpt


class PersistenceError(IngestError):
    pass


class ConstraintViolation(PersistenceError):
    """The store rejected a write (foreign key, uniqueness, not-null, ...)."""

    def __init__(self, message, *, pgcode=None, constraint=None, detail=None):
        super().__init__(message)
        self.pgcode = pgcode
        self.constraint = constraint
        self.detail = detail


class RegistryMiss(IngestError, LookupError):
    def __init__(self, name, available):
        self.name = name
        self.available = list(available)
        super().__init__(
            f'Source "{name}" not found. Available sources: {", ".join(self.available) or "(none)"}'
        )


class ThrottleClosed(IngestError):
    pass


class RunInProgress(IngestError):
    """Another crawler run started from this process has not finished yet."""
