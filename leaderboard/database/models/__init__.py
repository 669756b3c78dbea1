"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from leaderboard.database.models.player import Player, PlayerStatus

__all__ = ["Player", "PlayerStatus"]
