from promptshelf.services.errors import (
    InvalidPromptStateError,
    PromptConflictError,
    PromptNotFoundError,
    PromptServiceError,
    PromptStorageError,
)
from promptshelf.services.lifecycle_service import (
    PromptPayload,
    activate_version,
    create_family,
    create_version,
    get_active,
    get_by_id,
    get_version,
    list_versions,
    query,
    retire,
)
from promptshelf.services.query_engine import PagedResult, PromptQuery, SortField, SortOrder
