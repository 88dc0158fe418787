"""Extract JMeter test-plan XML from AI-generated markdown responses.

Copilot is instructed to wrap generated plans in a fenced code block:

    ```xml
    <?xml version="1.0" encoding="UTF-8"?>
    <jmeterTestPlan version="1.2" properties="5.0">
      <hashTree> ... </hashTree>
    </jmeterTestPlan>
    ```

Models do not always comply, so extraction tries, in order:

1. Fenced code blocks (with or without an ``xml`` hint).  The first block
   whose body mentions ``<jmeterTestPlan`` wins; other blocks are skipped.
2. A bare ``<jmeterTestPlan ...> ... </jmeterTestPlan>`` span anywhere in
   the text.  A standard XML declaration is prepended when missing.

Nothing here parses XML.  :func:`is_valid_jmeter_xml` is a cheap
presence check used to flag obviously wrong input before the structural
parser runs.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

ROOT_TAG = "jmeterTestPlan"
CONTAINER_TAG = "hashTree"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

# ```xml ... ```, ```jmx ... ``` or ``` ... ```; any language hint is dropped.
_CODE_BLOCK_RE = re.compile(r"```[\w-]*[ \t]*\r?\n?([\s\S]*?)```")

# Shortest span from the root opening tag to its closing tag, together with
# an XML declaration directly in front of it.  The root tag name never
# appears at depth, so non-greedy matching is safe.
_TEST_PLAN_RE = re.compile(rf"(?:<\?xml[^>]*\?>\s*)?<{ROOT_TAG}(?:\s[^>]*)?>[\s\S]*?</{ROOT_TAG}>")

_ROOT_OPEN = f"<{ROOT_TAG}"
_ROOT_CLOSE = f"</{ROOT_TAG}>"
_CONTAINER_OPEN = f"<{CONTAINER_TAG}>"


def extract_xml(text: str | None) -> str | None:
    """Return the JMeter document embedded in *text*, or *None*.

    Fenced blocks take priority over a raw span.  The result of a fenced
    block is its trimmed body, verbatim.  A raw span gets an XML
    declaration prepended when it does not already start with one.

    Examples
    --------
    >>> extract_xml("```xml\\n<jmeterTestPlan><hashTree/></jmeterTestPlan>\\n```")
    '<jmeterTestPlan><hashTree/></jmeterTestPlan>'
    >>> extract_xml("No markup here.") is None
    True
    """
    if text is None or not text.strip():
        return None

    for match in _CODE_BLOCK_RE.finditer(text):
        block = match.group(1).strip()
        if _ROOT_OPEN in block:
            return block

    match = _TEST_PLAN_RE.search(text)
    if match:
        xml = match.group(0)
        if not xml.startswith("<?xml"):
            xml = f"{XML_DECLARATION}\n{xml}"
        logger.debug("Extracted unfenced test plan (%d chars)", len(xml))
        return xml

    return None


def contains_jmeter_xml(text: str | None) -> bool:
    """Return *True* if :func:`extract_xml` would find a document in *text*."""
    return extract_xml(text) is not None


def is_valid_jmeter_xml(xml: str | None) -> bool:
    """Shallow structural check for a JMeter document.

    True only when *xml* is non-blank and contains the root opening tag,
    the root closing tag and at least one ``<hashTree>``.  This is a
    presence check, not a grammar check.
    """
    if xml is None or not xml.strip():
        return False
    return _ROOT_OPEN in xml and _ROOT_CLOSE in xml and _CONTAINER_OPEN in xml
