from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from promptshelf.database import get_db
from promptshelf.schemas.prompt import (
    CreatePromptRequest,
    CreateVersionRequest,
    PromptListResponse,
    PromptResponse,
    PromptSingleResponse,
)
from promptshelf.services import lifecycle_service
from promptshelf.services.query_engine import PromptQuery, SortField, SortOrder

router = APIRouter(prefix="/prompts", tags=["prompts"])


def _single(record) -> PromptSingleResponse:
    return PromptSingleResponse(data=PromptResponse.model_validate(record))


@router.get("", response_model=PromptListResponse)
def list_prompts(
    prompt_key: Optional[str] = None,
    model_name: Optional[str] = None,
    created_by: Optional[str] = None,
    tags: list[str] = Query(default=[]),
    is_active: Optional[bool] = None,
    sort_by: SortField = SortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    """List live prompts across all keys with filtering and pagination."""
    prompt_query = PromptQuery(
        prompt_key=prompt_key,
        model_name=model_name,
        created_by=created_by,
        tags=tags,
        is_active=is_active,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PromptListResponse.from_paged(lifecycle_service.query(db, prompt_query, page, limit))


@router.post("", response_model=PromptSingleResponse, status_code=201)
def create_prompt(request: CreatePromptRequest, db: Session = Depends(get_db)):
    """Create a new prompt family. Its first version is active."""
    record = lifecycle_service.create_family(db, request.prompt_key, request.to_payload(), request.version)
    return _single(record)


@router.get("/{prompt_key}", response_model=PromptSingleResponse)
def get_active_prompt(prompt_key: str, db: Session = Depends(get_db)):
    return _single(lifecycle_service.get_active(db, prompt_key))


@router.get("/{prompt_key}/versions", response_model=PromptListResponse)
def list_prompt_versions(
    prompt_key: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    return PromptListResponse.from_paged(lifecycle_service.list_versions(db, prompt_key, page, limit))


@router.post("/{prompt_key}/versions", response_model=PromptSingleResponse, status_code=201)
def create_prompt_version(prompt_key: str, request: CreateVersionRequest, db: Session = Depends(get_db)):
    record = lifecycle_service.create_version(
        db,
        prompt_key,
        request.to_payload(),
        version=request.version,
        activate=request.activate,
    )
    return _single(record)


@router.get("/{prompt_key}/versions/{version}", response_model=PromptSingleResponse)
def get_prompt_version(prompt_key: str, version: str, db: Session = Depends(get_db)):
    return _single(lifecycle_service.get_version(db, prompt_key, version))


@router.patch("/{prompt_key}/versions/{version}/activate", response_model=PromptSingleResponse)
def activate_prompt_version(prompt_key: str, version: str, db: Session = Depends(get_db)):
    """Make this version the active one for its key."""
    return _single(lifecycle_service.activate_version(db, prompt_key, version))


@router.get("/id/{record_id}", response_model=PromptSingleResponse)
def get_prompt_by_id(record_id: UUID, db: Session = Depends(get_db)):
    return _single(lifecycle_service.get_by_id(db, record_id))


@router.delete("/id/{record_id}", status_code=204)
def retire_prompt(record_id: UUID, db: Session = Depends(get_db)):
    """Retire (soft-delete) an inactive version."""
    lifecycle_service.retire(db, record_id)
    return Response(status_code=204)
