"""HTTP routes of the club portal, one module per resource."""

from routers import (
    access,
    analytics,
    announcements,
    auth,
    comments,
    events,
    forum,
    inventory,
    maintenance,
    media_kit,
    members,
    notifications,
    projects,
    sponsors,
    team,
    translation,
)

ALL_ROUTERS = (
    auth.router,
    members.router,
    announcements.router,
    events.router,
    comments.router,
    forum.router,
    projects.router,
    sponsors.router,
    team.router,
    inventory.router,
    access.router,
    media_kit.router,
    analytics.router,
    maintenance.router,
    notifications.router,
    translation.router,
)

__all__ = ["ALL_ROUTERS"]
