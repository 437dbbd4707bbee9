from typing import NamedTuple, Optional


class PipelineError(Exception):
    pass


class NetworkError(PipelineError):
    """A fetch failed: timeout, connection error or an HTTP error status.

    ``status`` is the HTTP status code when the server answered, ``None``
    when it never did. Callers probing alternate URLs check for 404.
    """

    def __init__(self, url: str, cause: object, status: Optional[int] = None):
        self.url = url
        self.cause = cause
        self.status = status
        if status is not None:
            msg = f"HTTP {status} for {url}"
        else:
            msg = f"{type(cause).__name__} for {url}: {cause}"
        super().__init__(msg)

    @property
    def not_found(self) -> bool:
        return self.status in (404, 410)


class StoreUnavailable(PipelineError):
    """The record store cannot be reached. Always fatal for a run."""


class ExtractionMiss(NamedTuple):
    field: str
    source_url: str


class MappingMiss(NamedTuple):
    value: str


class PersistenceConflict(NamedTuple):
    external_id: str
    kind: str
    kept: object
    removed: tuple
