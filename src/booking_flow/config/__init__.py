"""Settings and run configuration loaders."""

from .run_config import RunConfig
from .settings import Settings

__all__ = ["RunConfig", "Settings"]
