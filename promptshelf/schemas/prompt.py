from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from promptshelf.services.lifecycle_service import PromptPayload
from promptshelf.services.query_engine import PagedResult

PROMPT_KEY_PATTERN = r"^[A-Za-z0-9_-]+$"
MAX_TAGS = 20
MAX_TAG_LENGTH = 50

ModelName = Literal["GPT-4o", "GPT-4", "GPT-3.5-turbo", "Claude-3", "Claude-2", "Gemini-Pro"]


class PromptFields(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    version: Optional[str] = Field(default=None, min_length=1, max_length=50)
    model_name: ModelName
    content: str = Field(min_length=1, max_length=50000)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: list[str] = Field(default_factory=list)
    created_by: str = Field(min_length=1, max_length=255)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: list[str]) -> list[str]:
        normalized: list[str] = []
        seen: set[str] = set()
        for tag in value:
            tag = tag.strip()
            if not tag or len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"tags must be 1-{MAX_TAG_LENGTH} characters long")
            if tag in seen:
                continue
            normalized.append(tag)
            seen.add(tag)
        if len(normalized) > MAX_TAGS:
            raise ValueError(f"at most {MAX_TAGS} tags are allowed")
        return normalized

    def to_payload(self) -> PromptPayload:
        return PromptPayload(
            model_name=self.model_name,
            content=self.content,
            created_by=self.created_by,
            description=self.description,
            tags=self.tags,
        )


class CreatePromptRequest(PromptFields):
    prompt_key: str = Field(min_length=3, max_length=100, pattern=PROMPT_KEY_PATTERN)


class CreateVersionRequest(PromptFields):
    activate: bool = False


class PromptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: UUID
    prompt_key: str
    version: str
    is_active: bool
    created_at: datetime
    model_name: str
    content: str
    description: Optional[str] = None
    tags: list[str]
    created_by: str


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PromptListResponse(BaseModel):
    data: list[PromptResponse]
    pagination: PaginationResponse

    @classmethod
    def from_paged(cls, result: PagedResult) -> "PromptListResponse":
        return cls(
            data=[PromptResponse.model_validate(record) for record in result.data],
            pagination=PaginationResponse(
                page=result.page,
                limit=result.limit,
                total=result.total,
                total_pages=result.total_pages,
            ),
        )


class PromptSingleResponse(BaseModel):
    data: PromptResponse
