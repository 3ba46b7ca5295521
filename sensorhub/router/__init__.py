"""Router components for sensorhub."""

from .routers import RouteResult, TopicRouter

__all__ = [
    "RouteResult",
    "TopicRouter",
]
