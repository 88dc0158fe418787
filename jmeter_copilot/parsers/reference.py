"""Locate a ``.jmx`` file that an assistant response points to.

Sometimes Copilot writes the test plan to disk (or the user already has
one) and the reply only mentions the path.  Two shapes are recognised:

- inline code: ``results/plan.jmx`` wrapped in backticks
- a bare path: ``C:\\plans\\load.jmx``, ``/tmp/plan.jmx``,
  ``~/plans/load.jmx``, ``plan.jmx``

Candidates are checked in order of appearance; the first one that
resolves to an existing regular file wins.  Unresolvable candidates are
skipped silently.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

JMX_EXTENSION = ".jmx"

_JMX_PATH_RE = re.compile(
    r"`([^`]+\.jmx)`"                        # 1: inline code path
    r"|(?<![\w.\-/\\])"                      # bare path must start a token
    r"((?:~|[a-zA-Z]:)?[/\\]?"               # 2: optional home / drive / root
    r"(?:[\w.\-]+[/\\])*"                    #    directory segments
    r"[\w.\-]+\.jmx)\b",                     #    file name
    re.IGNORECASE,
)


def _resolve(candidate: str, base_dir: Path | None) -> Path:
    path = Path(candidate).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def iter_jmx_candidates(text: str | None):
    """Yield every path-like ``.jmx`` token in *text*, in order."""
    if text is None or not text.strip():
        return
    for match in _JMX_PATH_RE.finditer(text):
        candidate = (match.group(1) or match.group(2) or "").strip()
        if candidate:
            yield candidate


def find_jmx_reference(text: str | None, base_dir: str | Path | None = None) -> str | None:
    """Return the first ``.jmx`` path in *text* that exists on disk.

    Relative candidates resolve against *base_dir* (the current working
    directory when omitted).  Candidates joined onto *base_dir* are
    returned in that joined form so they can be opened directly.
    """
    base = Path(base_dir) if base_dir is not None else None
    for candidate in iter_jmx_candidates(text):
        try:
            path = _resolve(candidate, base)
            if path.is_file():
                logger.debug("Resolved .jmx reference: %s", path)
                return str(path)
        except OSError as exc:
            logger.debug("Skipping unresolvable candidate %s: %s", candidate, exc)
    return None
