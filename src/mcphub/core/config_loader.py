"""Load and merge MCP server definitions from the config search path."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from mcphub.models.server import ServerConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "mcp.json"
PROJECT_ROOT_FILENAME = ".mcp.json"
CONFIG_DIRNAME = ".mcphub"


def config_paths(cwd: Path, *, home: Path | None = None) -> list[Path]:
    """Config files in load order; later files override earlier ones."""
    home_dir = home if home is not None else Path.home()
    return [
        home_dir / CONFIG_DIRNAME / CONFIG_FILENAME,
        cwd / CONFIG_DIRNAME / CONFIG_FILENAME,
        cwd / PROJECT_ROOT_FILENAME,
    ]


def load_config_file(path: Path) -> dict[str, dict[str, Any]] | None:
    """Return the raw `mcpServers` mapping of one file, or None when unusable."""
    if not path.is_file():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to parse MCP config at %s: %s", path, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("Ignoring MCP config at %s: expected a JSON object", path)
        return None
    servers = payload.get("mcpServers")
    if servers is None:
        return {}
    if not isinstance(servers, dict):
        logger.warning("Ignoring MCP config at %s: 'mcpServers' must be an object", path)
        return None
    return {
        str(name): entry
        for name, entry in servers.items()
        if isinstance(entry, dict)
    }


def load_mcp_config(cwd: Path, *, home: Path | None = None) -> dict[str, ServerConfig]:
    """Merge server entries across the search path, key by key per server."""
    merged: dict[str, dict[str, Any]] = {}
    for path in config_paths(cwd, home=home):
        servers = load_config_file(path)
        if not servers:
            continue
        for name, entry in servers.items():
            merged[name] = {**merged.get(name, {}), **entry}

    configs: dict[str, ServerConfig] = {}
    for name, raw in merged.items():
        try:
            configs[name] = ServerConfig.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping MCP server %s: invalid config (%s)", name, exc)
    return configs
