"""Admin boundary: actor checks and request parsing."""

from leaderboard.modules.admin.gateway import ADMIN_ROLE, Actor, AdminGateway

__all__ = ["ADMIN_ROLE", "Actor", "AdminGateway"]
