"""FastAPI dependencies."""
from starlette.requests import HTTPConnection

from callbridge.core.container import ServiceContainer


def get_services(connection: HTTPConnection) -> ServiceContainer:
    """Get the service container for the running app (HTTP and WebSocket routes)."""
    return connection.app.state.services
