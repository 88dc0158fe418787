"""Turn assistant output (or a ``.jmx`` path) into a loaded test plan.

Every outcome is returned as a :data:`ParseResult`.  Collaborator errors
are mapped to :class:`ParseFailure`; nothing raised by the structural
parser escapes this module.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Union

from jmeter_copilot.parsers.plan_tree import HashTree, load_tree
from jmeter_copilot.parsers.xml_extractor import extract_xml, is_valid_jmeter_xml

logger = logging.getLogger(__name__)

NO_DOCUMENT_MESSAGE = "No valid JMeter test plan XML found in the response"

_STAGING_PREFIX = "jmeter-copilot-"
_STAGING_SUFFIX = ".jmx"


class FailureKind(str, Enum):
    """Why a parse attempt produced no tree."""

    EXTRACTION = "extraction"
    PARSE = "parse"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ParseSuccess:
    """A parsed tree together with the XML it came from."""

    tree: HashTree
    xml: str
    warnings: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return True


@dataclass(frozen=True)
class ParseFailure:
    """A human-readable reason no tree could be produced."""

    error_message: str
    kind: FailureKind = FailureKind.PARSE

    @property
    def is_success(self) -> bool:
        return False


ParseResult = Union[ParseSuccess, ParseFailure]


class TestPlanLoader:
    """Extract, stage, and parse JMeter test plans.

    Parameters
    ----------
    tree_loader:
        Structural parser taking a file path and returning a
        :class:`HashTree`.  Defaults to :func:`load_tree`.
    staging_dir:
        Directory for the transient staging file.  Defaults to the
        system temp directory.
    """

    __test__ = False  # keep pytest from collecting this class

    def __init__(
        self,
        tree_loader: Callable[[Path], HashTree] | None = None,
        staging_dir: str | Path | None = None,
    ):
        self._load_tree = tree_loader or load_tree
        self._staging_dir = str(staging_dir) if staging_dir is not None else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_xml(self, content: str | None) -> ParseResult:
        """Extract a test plan from *content* and parse it.

        The structural parser is never invoked when extraction finds
        nothing.  The shallow validity check is advisory: a failing check
        is logged and reported in ``warnings``, and the parser decides.
        """
        xml = extract_xml(content)
        if xml is None:
            return ParseFailure(NO_DOCUMENT_MESSAGE, FailureKind.EXTRACTION)

        warnings: tuple[str, ...] = ()
        if not is_valid_jmeter_xml(xml):
            message = "Extracted XML is missing a <hashTree> container; attempting parse anyway"
            logger.warning(message)
            warnings = (message,)

        try:
            tree = self.load_from_xml(xml)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Structural parse failed", exc_info=True)
            return ParseFailure(f"Failed to parse JMeter XML: {exc}", FailureKind.PARSE)

        return ParseSuccess(tree=tree, xml=xml, warnings=warnings)

    def parse_xml_file(self, file_path: str | Path) -> ParseResult:
        """Load a test plan directly from *file_path* (no extraction)."""
        path = Path(file_path)
        if not path.is_file():
            return ParseFailure(f"File not found: {file_path}", FailureKind.NOT_FOUND)

        try:
            tree = self._load_tree(path)
            xml = path.read_text(encoding="utf-8")
        except Exception as exc:  # noqa: BLE001
            logger.debug("Failed to load %s", path, exc_info=True)
            return ParseFailure(f"Failed to load JMeter file: {exc}", FailureKind.PARSE)

        return ParseSuccess(tree=tree, xml=xml)

    def load_from_xml(self, xml: str) -> HashTree:
        """Parse raw XML through a staging file.

        The structural parser reads files, so *xml* is written to a
        uniquely named temporary ``.jmx`` that is removed on every exit
        path.  Parser errors propagate to the caller.
        """
        handle = tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            prefix=_STAGING_PREFIX,
            suffix=_STAGING_SUFFIX,
            dir=self._staging_dir,
            delete=False,
        )
        staging = Path(handle.name)
        try:
            with handle:
                handle.write(xml)
            return self._load_tree(staging)
        finally:
            try:
                os.unlink(staging)
            except FileNotFoundError:
                pass


# ----------------------------------------------------------------------
# Module-level conveniences
# ----------------------------------------------------------------------

_default_loader = TestPlanLoader()


def parse_xml(content: str | None) -> ParseResult:
    """Shorthand for :meth:`TestPlanLoader.parse_xml` with defaults."""
    return _default_loader.parse_xml(content)


def parse_xml_file(file_path: str | Path) -> ParseResult:
    """Shorthand for :meth:`TestPlanLoader.parse_xml_file` with defaults."""
    return _default_loader.parse_xml_file(file_path)


def save_test_plan(
    xml: str,
    output_dir: str | Path,
    filename: str | None = None,
) -> Path:
    """Persist a generated test plan under *output_dir*.

    Parameters
    ----------
    xml:
        The document to write.
    output_dir:
        Directory to write into; created if needed.
    filename:
        Explicit file name.  When omitted a collision-free name of the
        form ``copilot-plan-<timestamp>-<id>.jmx`` is generated.

    Returns
    -------
    Path:
        The file written.

    Raises
    ------
    FileExistsError:
        If *filename* names a file that already exists.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    if filename is None:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        filename = f"copilot-plan-{stamp}-{uuid.uuid4().hex[:8]}{_STAGING_SUFFIX}"
    elif not filename.lower().endswith(_STAGING_SUFFIX):
        filename = f"{filename}{_STAGING_SUFFIX}"

    target = output_path / filename
    # "x" mode refuses to clobber an existing plan.
    with open(target, "x", encoding="utf-8") as f:
        f.write(xml)

    logger.info("Saved test plan to %s", target)
    return target
