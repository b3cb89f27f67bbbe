"""
Exception hierarchy for ingestion and retrieval.

Every error carries a short code, an HTTP status for the API layer and a
context dict (filename, chunk index, ...) so callers can retry or report.
"""
from typing import Any, Dict, Optional


class DocSearchError(Exception):
    """Base class for all docsearch errors."""

    error_code = "DOC_ERR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON responses and structured logs."""
        result: Dict[str, Any] = {
            "error": {
                "type": type(self).__name__,
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.context:
            result["context"] = self.context
        if self.cause is not None:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


class ValidationFailure(DocSearchError):
    """Empty or invalid input. Never retried."""

    error_code = "DOC_VALIDATION"
    status_code = 400


class UnsupportedFileType(ValidationFailure):
    """The upload's extension has no text extractor."""

    error_code = "DOC_UNSUPPORTED_TYPE"


class EmbeddingFailure(DocSearchError):
    """No usable embedding could be produced."""

    error_code = "DOC_EMBEDDING"
    status_code = 502


class ProviderError(EmbeddingFailure):
    """A single call to the embedding provider failed (network, auth, quota)."""

    error_code = "DOC_PROVIDER"


class DimensionMismatch(DocSearchError):
    """Two vectors that must share a dimension do not."""

    error_code = "DOC_DIMENSION"
    status_code = 500


class StorageFailure(DocSearchError):
    """The vector store rejected a read or write; writes were rolled back."""

    error_code = "DOC_STORAGE"
    status_code = 503


class DocumentNotFound(DocSearchError):
    error_code = "DOC_NOT_FOUND"
    status_code = 404
