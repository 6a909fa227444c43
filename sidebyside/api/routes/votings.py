# sidebyside/api/routes/votings.py
import re
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sidebyside.api.deps import get_current_user, get_optional_user
from sidebyside.core import file_security
from sidebyside.core.clock import as_utc
from sidebyside.database import get_db
from sidebyside.models.user import User
from sidebyside.models.voting import Voting
from sidebyside.schemas.voting import (
    MediaItem,
    OptionResponse,
    OptionResult,
    ResultsResponse,
    VoteRequest,
    VoteResponse,
    VotingCreateJSON,
    VotingCreatedResponse,
    VotingDetailResponse,
    VotingListItem,
    VotingListResponse,
    VotingResponse,
)
from sidebyside.services import voting_service
from sidebyside.services.media_service import MediaUpload
from sidebyside.services.notification_service import get_notification_service
from sidebyside.services.rate_limit_service import voting_rate_limit
from sidebyside.services.storage_service import StorageDriver, get_storage
from sidebyside.services.tally_service import VotingResults

router = APIRouter(prefix="/api/votings", tags=["votings"])

NUMBERED_IMAGE_FIELD = re.compile(r"^image(\d+)$")


def option_url(key: str) -> str:
    return f"/api/images/{key}"


def serialize_voting(voting: Voting) -> VotingResponse:
    return VotingResponse(
        id=voting.id,
        title=voting.title,
        created_at=as_utc(voting.created_at),
        end_at=as_utc(voting.end_at),
        duration_hours=voting.duration_hours,
        is_public=voting.is_public,
        user_id=voting.user_id,
        is_finished=voting.is_finished(),
        options=[
            OptionResponse(
                id=option.id,
                sort_order=option.sort_order,
                url=option_url(option.file_path),
                pixel_ratio=option.pixel_ratio,
                width=option.width,
                height=option.height,
                media_type=option.media_type.value,
            )
            for option in voting.options
        ],
    )


def serialize_results(results: VotingResults) -> ResultsResponse:
    return ResultsResponse(
        total_votes=results.total_votes,
        results=[
            OptionResult(option_id=r.option_id, count=r.count, percentage=r.percentage)
            for r in results.results
        ],
        percentages=results.percentages,
        winner=results.winner,
    )


# ===== Request body parsing =====

def _parse_float(value, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field}"
        )


def _parse_bool(value) -> bool:
    if value is None:
        return True
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _optional_number(values: list, index: int, field: str) -> Optional[float]:
    if index >= len(values) or values[index] in (None, ""):
        return None
    return _parse_float(values[index], field)


async def _uploads_from_form(request: Request):
    form = await request.form()

    files = [f for f in form.getlist("images") if hasattr(f, "read")]
    if not files:
        numbered = []
        for name, value in form.multi_items():
            match = NUMBERED_IMAGE_FIELD.match(name)
            if match and hasattr(value, "read"):
                numbered.append((int(match.group(1)), value))
        files = [value for _, value in sorted(numbered, key=lambda item: item[0])]

    widths = form.getlist("widths")
    heights = form.getlist("heights")
    pixel_ratios = form.getlist("pixel_ratios")

    uploads = []
    for index, file in enumerate(files):
        width = _optional_number(widths, index, "width")
        height = _optional_number(heights, index, "height")
        uploads.append(MediaUpload(
            filename=file_security.sanitize_filename(file.filename),
            content_type=(file.content_type or "").lower(),
            data=await file.read(),
            pixel_ratio=_optional_number(pixel_ratios, index, "pixel ratio"),
            width=int(width) if width else None,
            height=int(height) if height else None,
        ))

    title = form.get("title") or ""
    duration = _parse_float(form.get("duration", 24), "duration")
    is_public = _parse_bool(form.get("is_public", form.get("isPublic")))
    return title, duration, is_public, uploads


def _upload_from_item(index: int, item) -> MediaUpload:
    if isinstance(item, str):
        item = MediaItem(data=item)

    mime, data = file_security.decode_data_url(item.data)
    file_security.media_type_for(mime)

    filename = item.filename or f"image{index + 1}{file_security.extension_for(mime)}"
    return MediaUpload(
        filename=file_security.sanitize_filename(filename),
        content_type=mime,
        data=data,
        pixel_ratio=item.pixel_ratio,
        width=item.width,
        height=item.height,
    )


async def _uploads_from_json(request: Request):
    try:
        body = VotingCreateJSON.model_validate(await request.json())
    except (ValueError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid request body"
        )

    uploads = [_upload_from_item(index, item) for index, item in enumerate(body.images)]
    return body.title, body.duration, body.is_public, uploads


# ===== Routes =====

@router.get("", response_model=VotingListResponse)
def list_votings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Public votings plus the caller's private ones"""
    votings, total = voting_service.list_votings(db, current_user, page, limit)

    ids = [voting.id for voting in votings]
    counts = voting_service.vote_counts(db, ids)
    voted = voting_service.user_votes(db, current_user, ids)

    items = [
        VotingListItem(
            **serialize_voting(voting).model_dump(),
            vote_count=counts.get(voting.id, 0),
            has_voted=voting.id in voted,
        )
        for voting in votings
    ]

    return VotingListResponse(
        votings=items,
        total=total,
        page=page,
        pages=(total + limit - 1) // limit
    )


@router.post(
    "",
    response_model=VotingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(voting_rate_limit)],
)
async def create_voting(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageDriver = Depends(get_storage),
):
    """Create a voting from multipart files or JSON data URLs"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        title, duration, is_public, uploads = await _uploads_from_form(request)
    else:
        title, duration, is_public, uploads = await _uploads_from_json(request)

    # Pillow, storage writes and the commit all block
    voting = await run_in_threadpool(
        voting_service.create_voting, db, storage, current_user, title, duration, is_public, uploads
    )

    background_tasks.add_task(
        get_notification_service().notify_voting_created, voting.id, voting.title
    )

    return VotingCreatedResponse(voting=serialize_voting(voting))


@router.get("/{voting_id}", response_model=VotingDetailResponse)
def get_voting(
    voting_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    voting = voting_service.get_voting_or_404(db, voting_id)
    results = voting_service.compute_results(db, voting)
    selected = voting_service.user_votes(db, current_user, [voting.id]).get(voting.id)

    return VotingDetailResponse(
        voting=serialize_voting(voting),
        results=serialize_results(results) if results else None,
        has_voted=selected is not None,
        selected_option=selected,
    )


@router.post("/{voting_id}/vote", response_model=VoteResponse)
def vote(
    voting_id: str,
    data: VoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    voting_service.cast_vote(db, voting_id, data.option_id, current_user)
    return VoteResponse(success=True)


@router.get("/{voting_id}/results", response_model=ResultsResponse)
def get_results(
    voting_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Results of a finished voting; announces completion once"""
    voting = voting_service.get_voting_or_404(db, voting_id)

    results = voting_service.compute_results(db, voting)
    if results is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Voting is not finished yet"
        )

    if voting_service.claim_completion_notice(db, voting):
        background_tasks.add_task(
            get_notification_service().notify_voting_completed, voting.id, voting.title
        )

    return serialize_results(results)


@router.post("/{voting_id}/end-early", response_model=VotingCreatedResponse)
def end_voting_early(
    voting_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    voting = voting_service.end_early(db, voting_id, current_user)

    if voting_service.claim_completion_notice(db, voting):
        background_tasks.add_task(
            get_notification_service().notify_voting_completed, voting.id, voting.title
        )

    return VotingCreatedResponse(voting=serialize_voting(voting))


@router.delete("/{voting_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_voting(
    voting_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageDriver = Depends(get_storage),
):
    voting_service.delete_voting(db, storage, voting_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
