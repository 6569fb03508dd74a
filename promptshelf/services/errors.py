from typing import Any, Optional


class PromptServiceError(Exception):
    """Base error for prompt lifecycle operations."""

    code = "unknown"

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class PromptNotFoundError(PromptServiceError):
    code = "not_found"


class PromptConflictError(PromptServiceError):
    code = "conflict"


class InvalidPromptStateError(PromptServiceError):
    code = "invalid_state"


class PromptStorageError(PromptServiceError):
    """Unexpected storage failure. The message is safe to show to callers."""

    code = "internal"

    def __init__(self, context: Optional[dict[str, Any]] = None):
        super().__init__("Internal storage error", context)
