"""Configuration constants for the artisync web backend."""

import os
from pathlib import Path

ARTISYNC_HOME = Path(os.environ.get("ARTISYNC_HOME", str(Path.home() / ".artisync"))).expanduser()

# Directory whose .artisync/config.json overrides the user config
PROJECT_CONFIG_ROOT = os.environ.get("ARTISYNC_PROJECT_ROOT") or None

DEFAULT_BACKEND_PORT = 8001
