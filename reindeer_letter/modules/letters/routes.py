"""
Letter routes.

Endpoints:
- POST /letters - Write a letter (anonymous allowed)
- GET /letters/my - Received letters (paginated, optional category)
- GET /letters/my/self - Letters written to yourself
- GET /letters/{id} - Read a letter (recipient only, opens it)
- POST /letters/draft - Save a draft (create, or update with ?draft_id=)
- GET /letters/drafts - List drafts (paginated)
- GET/PUT/DELETE /letters/draft/{id} - Read, update, delete a draft
- POST /letters/draft/{id}/send - Send a draft
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from reindeer_letter.core.config import settings
from reindeer_letter.core.database import get_db
from reindeer_letter.models.letter import LetterCategory
from reindeer_letter.modules.auth.dependencies import (
    get_current_principal,
    get_current_principal_optional,
)
from reindeer_letter.modules.letters.access import Principal, allow_anonymous_sender
from reindeer_letter.modules.letters.lifecycle import LetterLifecycle, LifecycleConfig
from reindeer_letter.modules.letters.repository import LetterRepository
from reindeer_letter.modules.letters.schemas import (
    DraftOut,
    DraftPage,
    DraftSave,
    DraftSaveResponse,
    LetterCreate,
    LetterOut,
    LetterPage,
)

router = APIRouter(prefix="/letters", tags=["letters"])


def get_lifecycle_config() -> LifecycleConfig:
    """Overridable in tests to pin the clock."""
    return LifecycleConfig.from_settings(settings)


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    config: LifecycleConfig = Depends(get_lifecycle_config),
) -> LetterLifecycle:
    return LetterLifecycle(LetterRepository(db), config)


@router.post("", response_model=LetterOut, status_code=201)
async def create_letter(
    body: LetterCreate,
    principal: Optional[Principal] = Depends(get_current_principal_optional),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    """
    Write a letter.

    Logged-in senders are recorded; otherwise the letter is anonymous.
    Without scheduled_at (or with a date today or earlier) it is delivered
    immediately, otherwise it waits for the delivery sweep.
    """
    sender_id = allow_anonymous_sender(principal, engine.config.allow_anonymous)
    return await engine.create_letter(
        body.to_content(),
        recipient_id=body.receiver_id,
        scheduled_at=body.scheduled_at,
        sender_id=sender_id,
    )


@router.get("/my", response_model=LetterPage)
async def my_letters(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, description="Items per page"),
    category: Optional[LetterCategory] = Query(None, description="TEXT or VOICE"),
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    result = await engine.list_received(
        principal.id,
        page=page,
        limit=limit,
        category=category.value if category else None,
    )
    return LetterPage.from_page(result)


@router.get("/my/self", response_model=LetterPage)
async def my_letters_to_myself(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    result = await engine.list_self_addressed(principal.id, page=page, limit=limit)
    return LetterPage.from_page(result)


# Draft routes are declared before /{letter_id} so "drafts" never parses as an id

@router.post("/draft", response_model=DraftSaveResponse)
async def save_draft(
    body: DraftSave,
    response: Response,
    draft_id: Optional[int] = Query(None, description="Existing draft to update"),
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    result = await engine.save_draft(body.to_fields(), principal.id, draft_id=draft_id)
    response.status_code = 201 if result.created else 200
    return DraftSaveResponse(
        outcome=result.outcome.value,
        draft=DraftOut.model_validate(result.letter),
    )


@router.get("/drafts", response_model=DraftPage)
async def list_drafts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    result = await engine.list_drafts(principal.id, page=page, limit=limit)
    return DraftPage.from_page(result)


@router.get("/draft/{draft_id}", response_model=DraftOut)
async def get_draft(
    draft_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    return await engine.get_draft(draft_id, principal.id)


@router.put("/draft/{draft_id}", response_model=DraftOut)
async def update_draft(
    draft_id: int,
    body: DraftSave,
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    result = await engine.save_draft(body.to_fields(), principal.id, draft_id=draft_id)
    return result.letter


@router.delete("/draft/{draft_id}", status_code=204)
async def delete_draft(
    draft_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    await engine.delete_draft(draft_id, principal.id)
    return Response(status_code=204)


@router.post("/draft/{draft_id}/send", response_model=LetterOut)
async def send_draft(
    draft_id: int,
    body: LetterCreate,
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    """Send a draft in place; the letter keeps the draft's id."""
    return await engine.send_draft(
        draft_id,
        body.to_content(),
        sender_id=principal.id,
        recipient_id=body.receiver_id,
        scheduled_at=body.scheduled_at,
    )


@router.get("/{letter_id}", response_model=LetterOut)
async def read_letter(
    letter_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: LetterLifecycle = Depends(get_lifecycle),
):
    """
    Read a letter.

    Errors:
        403 - not the recipient, or not delivered yet
        404 - no such letter
    """
    return await engine.view_letter(letter_id, principal.id)
