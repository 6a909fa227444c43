from .user import User
from .voting import Voting, VotingOption, MediaType
from .vote import Vote
from .auth import Session, MagicToken, FigmaAuthCode

__all__ = ["User", "Voting", "VotingOption", "MediaType", "Vote", "Session", "MagicToken", "FigmaAuthCode"]
