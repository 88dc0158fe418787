"""Copilot credential resolution for the chat transport.

The chat-completions API accepts a raw GitHub OAuth / PAT token
(``gho_``, ``ghu_``, ``ghp_`` ...) as a ``Bearer`` header, so all we
need is to find one.

Token resolution order (first wins):
1. ``COPILOT_GITHUB_TOKEN`` environment variable
2. ``GH_TOKEN`` environment variable
3. Copilot editor-plugin config files (``hosts.json`` / ``apps.json``)
4. ``gh auth token`` from the GitHub CLI
5. ``GITHUB_TOKEN`` environment variable
"""

import json
import logging
import os
import platform
import subprocess
from pathlib import Path

from knack.util import CLIError

logger = logging.getLogger(__name__)


def _get_copilot_config_dir() -> Path:
    """Return the platform-specific ``github-copilot`` config directory."""
    system = platform.system()

    if system == "Windows":
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        if local_app_data:
            return Path(local_app_data) / "github-copilot"
        return Path.home() / "AppData" / "Local" / "github-copilot"

    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "github-copilot"

    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "github-copilot"
    return Path.home() / ".config" / "github-copilot"


def _read_plugin_token() -> str | None:
    """Read an OAuth token written by a Copilot editor plugin.

    Both files map a host to ``{"oauth_token": "..."}``; ``hosts.json``
    is the newer of the two and is checked first.
    """
    config_dir = _get_copilot_config_dir()

    for filename in ("hosts.json", "apps.json"):
        token_file = config_dir / filename
        if not token_file.exists():
            continue
        try:
            data = json.loads(token_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.debug("Failed to read %s: %s", token_file, exc)
            continue

        if not isinstance(data, dict):
            continue
        for host_data in data.values():
            if isinstance(host_data, dict) and host_data.get("oauth_token"):
                logger.debug("Found Copilot OAuth token in %s", filename)
                return host_data["oauth_token"]

    return None


def _read_gh_token() -> str | None:
    """Ask the GitHub CLI for its active token; *None* if unavailable."""
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            check=False,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        return None
    token = result.stdout.strip() if result.returncode == 0 else ""
    return token or None


def _resolve_token() -> tuple[str, str] | None:
    """Return ``(token, source_label)`` or *None*.  The label is for logs."""
    for var in ("COPILOT_GITHUB_TOKEN", "GH_TOKEN"):
        value = os.environ.get(var, "").strip()
        if value:
            return value, f"env:{var}"

    plugin_token = _read_plugin_token()
    if plugin_token:
        return plugin_token, "copilot-plugin-config"

    gh_token = _read_gh_token()
    if gh_token:
        return gh_token, "gh-cli"

    env_token = os.environ.get("GITHUB_TOKEN", "").strip()
    if env_token:
        return env_token, "env:GITHUB_TOKEN"

    return None


def get_copilot_token() -> str:
    """Get a raw GitHub token usable against the Copilot API.

    Raises:
        CLIError: If no credentials are found.
    """
    resolved = _resolve_token()
    if not resolved:
        raise CLIError(
            "No Copilot credentials found.\n\n"
            "To authenticate, do ONE of the following:\n"
            "  1. Run 'gh auth login' with an account that has Copilot access\n"
            "  2. Set COPILOT_GITHUB_TOKEN to a token with Copilot access"
        )

    token, source = resolved
    logger.info("Resolved Copilot token from %s", source)
    return token


def is_copilot_authenticated() -> bool:
    """Check whether any GitHub credentials are available for Copilot."""
    return _resolve_token() is not None
