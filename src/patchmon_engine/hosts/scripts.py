"""Serve the agent shell scripts with runtime configuration spliced in.

The scripts themselves are opaque files read from ``agents_dir``. Rendering
only normalises line endings, demotes the original shebang to a comment and
prepends a fresh ``#!/bin/bash`` header of ``export`` lines.
"""

import re
from pathlib import Path

from patchmon_engine.common.exceptions import NotFoundError, PatchmonError

AGENT_SCRIPT = "patchmon-agent.sh"
INSTALL_SCRIPT = "patchmon_install.sh"
REMOVE_SCRIPT = "patchmon_remove.sh"
PROXMOX_SCRIPT = "proxmox_auto_enroll.sh"

_SHEBANG_RE = re.compile(r"^#!")
_AGENT_VERSION_RE = re.compile(r'AGENT_VERSION="([^"]+)"')
_PROXMOX_CONFIG_RE = re.compile(
    r"# ===== CONFIGURATION =====.*?(?=# ===== COLOR OUTPUT =====)", re.DOTALL
)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _with_env_header(script: str, env: dict[str, str], comment: str | None = None) -> str:
    lines = ["#!/bin/bash"]
    if comment:
        lines.append(comment)
    lines.extend(f'export {name}="{value}"' for name, value in env.items())
    header = "\n".join(lines) + "\n\n"
    return header + _SHEBANG_RE.sub("#", script, count=1)


def render_install_script(
    template: str,
    server_url: str,
    api_id: str,
    api_key: str,
    curl_flags: str,
    force: bool = False,
) -> str:
    return _with_env_header(
        normalize_line_endings(template),
        {
            "PATCHMON_URL": server_url,
            "API_ID": api_id,
            "API_KEY": api_key,
            "CURL_FLAGS": curl_flags,
            "FORCE_INSTALL": "true" if force else "false",
        },
    )


def render_remove_script(template: str, curl_flags: str) -> str:
    return _with_env_header(normalize_line_endings(template), {"CURL_FLAGS": curl_flags})


def render_agent_script(template: str, curl_flags: str) -> str:
    return normalize_line_endings(template).replace(
        'CURL_FLAGS=""', f'CURL_FLAGS="{curl_flags}"'
    )


def render_proxmox_script(
    template: str,
    server_url: str,
    token_key: str,
    token_secret: str,
    curl_flags: str,
) -> str:
    script = _SHEBANG_RE.sub("#", normalize_line_endings(template), count=1)
    script = _PROXMOX_CONFIG_RE.sub("", script, count=1)
    return _with_env_header(
        script,
        {
            "PATCHMON_URL": server_url,
            "AUTO_ENROLLMENT_KEY": token_key,
            "AUTO_ENROLLMENT_SECRET": token_secret,
            "CURL_FLAGS": curl_flags,
        },
        comment="# PatchMon Auto-Enrollment Configuration (Auto-generated)",
    )


def extract_agent_version(script: str) -> str:
    match = _AGENT_VERSION_RE.search(script)
    if not match:
        raise PatchmonError("Could not extract version from agent script", code="AGENT_VERSION_UNKNOWN")
    return match.group(1)


class ScriptStore:
    """Reads script files from a directory on disk."""

    _LABELS = {
        AGENT_SCRIPT: "Agent script",
        INSTALL_SCRIPT: "Installation script",
        REMOVE_SCRIPT: "Removal script",
        PROXMOX_SCRIPT: "Proxmox enrollment script",
    }

    def __init__(self, agents_dir: str | Path):
        self.agents_dir = Path(agents_dir)

    def read(self, name: str) -> str:
        path = self.agents_dir / name
        if not path.is_file():
            raise NotFoundError(f"{self._LABELS.get(name, 'Script')} not found")
        # Keep bare CRs intact so normalisation sees them.
        with open(path, encoding="utf-8", newline="") as fh:
            return fh.read()
