from .client import BettingClient, create_betting_client
from .config import BettingAPIConfig
from .exceptions import (
    BettingAPIError,
    BettingBadRequestError,
    BettingNotFoundError,
    BettingServerError,
)
from .models import (
    Account,
    Batch,
    Bet,
    BetStatus,
    NewBet,
)

__all__ = [
    "BettingClient",
    "create_betting_client",
    "BettingAPIConfig",
    "BettingAPIError",
    "BettingBadRequestError",
    "BettingNotFoundError",
    "BettingServerError",
    "Account",
    "Batch",
    "Bet",
    "BetStatus",
    "NewBet",
]
