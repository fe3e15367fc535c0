"""
Exception hierarchy for corpus building and retrieval.

Build-time failures are fatal and abort the build. Corrupt stored indexes are
fatal for one knowledge base only. Query-time embedding failures never leave
the query engine: they degrade the query to lexical-only scoring.
"""

from typing import Any, Dict, Optional


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge base errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class BuildError(KnowledgeBaseError):
    """Raised when the corpus build cannot complete. Nothing is published."""

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if document_id:
            details['document_id'] = document_id
        self.document_id = document_id
        super().__init__(message, details)


class CorruptIndexError(KnowledgeBaseError):
    """Raised when a stored posting or embedding of a knowledge base fails to decode."""

    def __init__(self, kb_id: str, message: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details['kb_id'] = kb_id
        self.kb_id = kb_id
        super().__init__(f"Corrupt index for knowledge base '{kb_id}': {message}", details)


class KnowledgeBaseNotFoundError(KnowledgeBaseError):
    """Raised when a knowledge base id is not present in the corpus."""

    def __init__(self, kb_id: str):
        self.kb_id = kb_id
        super().__init__(f"Knowledge base not found: {kb_id}", {'kb_id': kb_id})


class EmbeddingUnavailableError(KnowledgeBaseError):
    """Raised when the query embedding cannot be produced (failure, timeout, bad dimension)."""
