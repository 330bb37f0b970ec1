"""Config loading for the Tuck backend."""

import json
import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.json"

DEFAULTS = {
    "backend_host": "127.0.0.1",
    "backend_port": 5112,
    "api_base_url": "https://tuckserverapi-production.up.railway.app",
    "app_group": "group.com.bookmarkapp.shared",
    "shared_container": "~/.tuck/group.com.bookmarkapp.shared",
    "request_timeout": 30,
    "max_concurrent_fetches": 8,
}


def load_config(path: str | Path | None = None) -> dict:
    """Read config.json (or $TUCK_CONFIG) on top of DEFAULTS."""
    path = Path(path or os.environ.get("TUCK_CONFIG") or CONFIG_PATH)
    config = dict(DEFAULTS)
    if path.exists():
        config.update(json.loads(path.read_text()))
    else:
        log.warning("Config file %s not found, using defaults", path)
    config["shared_container"] = str(Path(config["shared_container"]).expanduser())
    return config
