"""Share-link engine for asset management systems."""

from .main import create_app
from .settings import ShareEngineSettings

__all__ = ["create_app", "ShareEngineSettings"]
