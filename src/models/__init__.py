from src.models.base import Base
from src.models.competition import (
    Competition,
    Deposit,
    LeaderboardDeposit,
    LeaderboardEntry,
)

__all__ = [
    "Base",
    "Competition",
    "Deposit",
    "LeaderboardEntry",
    "LeaderboardDeposit",
]
