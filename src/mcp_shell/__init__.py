"""Request-serving shell: middleware, rate limiting, tool dispatch and health."""

from .config import ServerConfig, load_config
from .coordinator import RequestCoordinator

__all__ = ["RequestCoordinator", "ServerConfig", "load_config"]
