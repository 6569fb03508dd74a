from promptshelf.schemas.prompt import (
    CreatePromptRequest,
    CreateVersionRequest,
    PaginationResponse,
    PromptListResponse,
    PromptResponse,
    PromptSingleResponse,
)

__all__ = [
    "CreatePromptRequest",
    "CreateVersionRequest",
    "PaginationResponse",
    "PromptListResponse",
    "PromptResponse",
    "PromptSingleResponse",
]
