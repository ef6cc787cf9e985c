"""Error taxonomy shared by the store, the search service and the HTTP layer."""


class MdReaderError(Exception):
    """Base class for all mdreader errors."""


class InvalidInputError(MdReaderError):
    """A required field is missing or malformed. Raised before any I/O."""


class NotFoundError(MdReaderError):
    """A document, annotation or collection does not exist."""


class MissingReferenceError(NotFoundError):
    """A row would reference a document or collection that does not exist."""


class ConflictError(MdReaderError):
    """A uniqueness constraint would be violated (e.g. duplicate collection name)."""


class ConsistencyError(MdReaderError):
    """The document table and the full-text index disagree. A rescan is required."""
