# sidebyside/services/voting_service.py
from datetime import timedelta
from typing import List, Optional
import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from sidebyside.config import ANONYMOUS_USER_ID
from sidebyside.core.clock import utcnow
from sidebyside.core.logger import logger
from sidebyside.models.user import User
from sidebyside.models.vote import Vote
from sidebyside.models.voting import Voting, VotingOption
from sidebyside.services import media_service, tally_service
from sidebyside.services.media_service import MediaUpload
from sidebyside.services.storage_service import StorageDriver

MIN_OPTIONS = 2
MAX_OPTIONS = 10
MAX_TITLE_LENGTH = 200
MAX_DURATION_HOURS = 720  # 30 days

ALREADY_VOTED = "You have already voted in this voting"


def is_anonymous(user: Optional[User]) -> bool:
    return user is not None and user.id == ANONYMOUS_USER_ID


def get_voting_or_404(db: Session, voting_id: str) -> Voting:
    voting = db.query(Voting)\
        .options(selectinload(Voting.options))\
        .filter(Voting.id == voting_id)\
        .first()
    if not voting:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Voting not found"
        )
    return voting


def ensure_owner(voting: Voting, user: User) -> None:
    if voting.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied"
        )


def validate_voting_input(title: str, duration_hours: float, media_count: int) -> str:
    """Shared checks for multipart and JSON creation; returns the cleaned title"""
    title = (title or "").strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Title must be at most {MAX_TITLE_LENGTH} characters"
        )

    if media_count < MIN_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At least {MIN_OPTIONS} images or videos are required"
        )
    if media_count > MAX_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_OPTIONS} images or videos are allowed"
        )

    if not (0 < duration_hours <= MAX_DURATION_HOURS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Duration must be between 0 and {MAX_DURATION_HOURS} hours"
        )

    return title


def create_voting(
    db: Session,
    storage: StorageDriver,
    owner: User,
    title: str,
    duration_hours: float,
    is_public: bool,
    uploads: List[MediaUpload],
) -> Voting:
    """Store media, then insert the voting and its options in one commit"""
    title = validate_voting_input(title, duration_hours, len(uploads))

    voting_id = str(uuid.uuid4())
    stored = media_service.store_media(storage, voting_id, uploads)

    now = utcnow()
    voting = Voting(
        id=voting_id,
        title=title,
        created_at=now,
        end_at=now + timedelta(hours=duration_hours),
        duration_hours=duration_hours,
        is_public=is_public,
        user_id=owner.id,
        complete_notified=False,
    )
    voting.options = [
        VotingOption(
            file_path=media.key,
            sort_order=index,
            pixel_ratio=media.pixel_ratio,
            width=media.width,
            height=media.height,
            media_type=media.media_type,
        )
        for index, media in enumerate(stored)
    ]

    db.add(voting)
    try:
        db.commit()
    except Exception:
        db.rollback()
        media_service.delete_media(storage, [media.key for media in stored])
        raise
    db.refresh(voting)

    logger.info(f"Voting {voting.id} created by {owner.id} with {len(stored)} options")
    return voting


def list_votings(db: Session, user: Optional[User], page: int, limit: int):
    """Public votings plus the caller's own private ones, newest first"""
    visibility = Voting.is_public == True
    if user is not None:
        visibility = or_(visibility, Voting.user_id == user.id)

    query = db.query(Voting).filter(visibility)
    total = query.count()

    votings = query\
        .options(selectinload(Voting.options))\
        .order_by(Voting.created_at.desc())\
        .offset((page - 1) * limit)\
        .limit(limit)\
        .all()

    return votings, total


def vote_counts(db: Session, voting_ids: List[str]) -> dict:
    """voting_id -> number of votes"""
    if not voting_ids:
        return {}
    rows = db.query(Vote.voting_id, func.count(Vote.id))\
        .filter(Vote.voting_id.in_(voting_ids))\
        .group_by(Vote.voting_id)\
        .all()
    return {voting_id: count for voting_id, count in rows}


def user_votes(db: Session, user: Optional[User], voting_ids: List[str]) -> dict:
    """voting_id -> option_id the user picked (real users only)"""
    if user is None or is_anonymous(user) or not voting_ids:
        return {}
    rows = db.query(Vote.voting_id, Vote.option_id)\
        .filter(Vote.user_id == user.id, Vote.voting_id.in_(voting_ids))\
        .all()
    return {voting_id: option_id for voting_id, option_id in rows}


def find_vote(db: Session, voting_id: str, user_id: str) -> Optional[Vote]:
    return db.query(Vote)\
        .filter(Vote.voting_id == voting_id, Vote.user_id == user_id)\
        .first()


def cast_vote(db: Session, voting_id: str, option_id: int, user: User) -> Vote:
    """
    Record a vote.

    Order of checks: existence, deadline, option membership, duplicate.
    The (voting_id, user_id) unique constraint backs the duplicate check
    when two requests race past it.
    """
    voting = get_voting_or_404(db, voting_id)

    if voting.is_finished():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Voting has ended"
        )

    if option_id not in {option.id for option in voting.options}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid option"
        )

    # Anonymous mode shares one identity, so those votes are not deduplicated
    voter_id = None if is_anonymous(user) else user.id

    if voter_id is not None and find_vote(db, voting_id, voter_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ALREADY_VOTED
        )

    vote = Vote(voting_id=voting_id, option_id=option_id, user_id=voter_id)
    db.add(vote)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ALREADY_VOTED
        )

    db.refresh(vote)
    return vote


def compute_results(db: Session, voting: Voting) -> Optional[tally_service.VotingResults]:
    """None while the voting is active"""
    if not voting.is_finished():
        return None

    rows = db.query(Vote.option_id, func.count(Vote.id))\
        .filter(Vote.voting_id == voting.id)\
        .group_by(Vote.option_id)\
        .all()

    option_ids = [option.id for option in voting.options]
    return tally_service.tally(option_ids, dict(rows))


def claim_completion_notice(db: Session, voting: Voting) -> bool:
    """
    Flip complete_notified once for a finished voting.

    True means the caller should send the completion notification.
    """
    if voting.complete_notified or not voting.is_finished():
        return False

    updated = db.query(Voting)\
        .filter(Voting.id == voting.id, Voting.complete_notified == False)\
        .update({Voting.complete_notified: True}, synchronize_session=False)
    db.commit()
    db.refresh(voting)
    return updated == 1


def end_early(db: Session, voting_id: str, user: User) -> Voting:
    voting = get_voting_or_404(db, voting_id)
    ensure_owner(voting, user)

    if voting.is_finished():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Voting has already ended"
        )

    voting.end_at = utcnow()
    db.commit()
    db.refresh(voting)

    logger.info(f"Voting {voting.id} ended early by {user.id}")
    return voting


def delete_voting(db: Session, storage: StorageDriver, voting_id: str, user: User) -> None:
    voting = get_voting_or_404(db, voting_id)
    ensure_owner(voting, user)

    keys = [option.file_path for option in voting.options]

    db.delete(voting)
    db.commit()

    media_service.delete_media(storage, keys)
    logger.info(f"Voting {voting_id} deleted by {user.id}")


def finished_unnotified(db: Session) -> List[Voting]:
    """Finished votings whose completion was never announced"""
    return db.query(Voting)\
        .filter(Voting.end_at <= utcnow(), Voting.complete_notified == False)\
        .all()


def claim_finished_votings(db: Session) -> List[Voting]:
    """Claim every finished, unannounced voting; callers send the notices"""
    return [voting for voting in finished_unnotified(db) if claim_completion_notice(db, voting)]
