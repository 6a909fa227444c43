# sidebyside/schemas/voting.py
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional, Union

class OptionResponse(BaseModel):
    """Voting option"""
    id: int
    sort_order: int
    url: str
    pixel_ratio: float
    width: int
    height: int
    media_type: str

class OptionResult(BaseModel):
    option_id: int
    count: int
    percentage: int

class ResultsResponse(BaseModel):
    """Results of a finished voting"""
    total_votes: int
    results: List[OptionResult]
    percentages: List[int]
    winner: Union[int, Literal["tie"]]

class VotingResponse(BaseModel):
    """Voting"""
    id: str
    title: str
    created_at: datetime
    end_at: datetime
    duration_hours: float
    is_public: bool
    user_id: Optional[str] = None
    is_finished: bool
    options: List[OptionResponse]

class VotingListItem(VotingResponse):
    vote_count: int
    has_voted: bool

class VotingListResponse(BaseModel):
    votings: List[VotingListItem]
    total: int
    page: int
    pages: int

class VotingDetailResponse(BaseModel):
    voting: VotingResponse
    results: Optional[ResultsResponse] = None
    has_voted: bool
    selected_option: Optional[int] = None

class VotingCreatedResponse(BaseModel):
    voting: VotingResponse

class MediaItem(BaseModel):
    """Embedded media in a JSON create request"""
    model_config = ConfigDict(populate_by_name=True)

    data: str  # data URL
    filename: Optional[str] = None
    pixel_ratio: Optional[float] = Field(default=None, alias="pixelRatio", gt=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)

class VotingCreateJSON(BaseModel):
    """JSON create request (Figma plugin)"""
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    duration: float = 24
    is_public: bool = Field(default=True, alias="isPublic")
    images: List[Union[str, MediaItem]] = Field(default_factory=list)

class VoteRequest(BaseModel):
    """Vote request"""
    model_config = ConfigDict(populate_by_name=True)

    option_id: int = Field(..., alias="optionId")

class VoteResponse(BaseModel):
    success: bool = True
