"""Structural parser for JMeter ``.jmx`` documents.

JMeter serialises a test plan as alternating siblings inside
``<hashTree>`` containers: each test element is followed by a
``<hashTree>`` holding that element's children::

    <jmeterTestPlan version="1.2" properties="5.0" jmeter="5.6.3">
      <hashTree>
        <TestPlan guiclass="TestPlanGui" testclass="TestPlan" testname="Plan">
          ...
        </TestPlan>
        <hashTree>
          <ThreadGroup ...> ... </ThreadGroup>
          <hashTree/>
        </hashTree>
      </hashTree>
    </jmeterTestPlan>

:func:`load_tree` turns that into a :class:`HashTree` of
:class:`TestElement` nodes.  The host application decides what to do
with the tree; this module only reads it.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from jmeter_copilot.errors import TestPlanFormatError
from jmeter_copilot.parsers.xml_extractor import CONTAINER_TAG, ROOT_TAG

logger = logging.getLogger(__name__)

# Scalar property elements and how to coerce their text.
_SCALAR_PROPS: dict[str, Any] = {
    "stringProp": lambda v: v or "",
    "boolProp": lambda v: (v or "").strip().lower() == "true",
    "intProp": lambda v: int((v or "0").strip()),
    "longProp": lambda v: int((v or "0").strip()),
    "doubleProp": lambda v: float((v or "0").strip()),
}
_COMPOSITE_PROPS = frozenset({"elementProp", "collectionProp", "objProp"})


@dataclass
class TestElement:
    """One JMeter test element (TestPlan, ThreadGroup, sampler, listener, ...)."""

    __test__ = False  # keep pytest from collecting this class

    tag: str
    testclass: str = ""
    guiclass: str = ""
    testname: str = ""
    enabled: bool = True
    properties: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, ET.Element] = field(default_factory=dict, repr=False)


@dataclass
class HashTree:
    """Ordered ``(element, subtree)`` pairs, mirroring JMeter's HashTree."""

    nodes: list[tuple[TestElement, HashTree]] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)

    def add(self, element: TestElement, subtree: HashTree | None = None) -> HashTree:
        child = subtree if subtree is not None else HashTree()
        self.nodes.append((element, child))
        return child

    def elements(self) -> list[TestElement]:
        """Top-level elements of this tree."""
        return [element for element, _ in self.nodes]

    def walk(self) -> Iterator[tuple[int, TestElement]]:
        """Depth-first ``(depth, element)`` pairs."""
        for element, subtree in self.nodes:
            yield 0, element
            for depth, child in subtree.walk():
                yield depth + 1, child

    def find(self, testclass: str) -> list[TestElement]:
        """All elements anywhere in the tree whose testclass (or tag) matches."""
        return [e for _, e in self.walk() if testclass in (e.testclass, e.tag)]

    def __iter__(self) -> Iterator[tuple[TestElement, HashTree]]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------


def _parse_element(node: ET.Element) -> TestElement:
    element = TestElement(
        tag=node.tag,
        testclass=node.get("testclass", ""),
        guiclass=node.get("guiclass", ""),
        testname=node.get("testname", ""),
        enabled=node.get("enabled", "true").strip().lower() != "false",
    )
    for prop in node:
        name = prop.get("name")
        if not name:
            continue
        coerce = _SCALAR_PROPS.get(prop.tag)
        if coerce is not None:
            try:
                element.properties[name] = coerce(prop.text)
            except ValueError as exc:
                raise TestPlanFormatError(
                    f"Invalid value for {prop.tag} '{name}' in {node.tag}: {prop.text!r}"
                ) from exc
        elif prop.tag in _COMPOSITE_PROPS:
            element.raw[name] = prop
    return element


def _parse_hash_tree(container: ET.Element) -> HashTree:
    tree = HashTree()
    children = list(container)
    i = 0
    while i < len(children):
        node = children[i]
        if node.tag == CONTAINER_TAG:
            # Orphan container: adopt its children at this level.
            tree.nodes.extend(_parse_hash_tree(node).nodes)
            i += 1
            continue
        element = _parse_element(node)
        subtree = HashTree()
        if i + 1 < len(children) and children[i + 1].tag == CONTAINER_TAG:
            subtree = _parse_hash_tree(children[i + 1])
            i += 1
        tree.add(element, subtree)
        i += 1
    return tree


def parse_tree(xml: str) -> HashTree:
    """Parse a JMeter document held in memory."""
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise TestPlanFormatError(f"Malformed XML: {exc}") from exc
    return _build(root)


def load_tree(path: str | Path) -> HashTree:
    """Load a ``.jmx`` file into a :class:`HashTree`.

    Raises:
        TestPlanFormatError: If the file is not well-formed XML or is not
            a JMeter test plan.
        OSError: If the file cannot be read.
    """
    try:
        root = ET.parse(str(path)).getroot()
    except ET.ParseError as exc:
        raise TestPlanFormatError(f"Malformed XML in {path}: {exc}") from exc
    tree = _build(root)
    logger.debug("Loaded %s: %d top-level element(s)", path, len(tree))
    return tree


def _build(root: ET.Element) -> HashTree:
    if root.tag != ROOT_TAG:
        raise TestPlanFormatError(f"Expected <{ROOT_TAG}> root element, found <{root.tag}>")
    container = root.find(CONTAINER_TAG)
    if container is None:
        raise TestPlanFormatError(f"<{ROOT_TAG}> has no <{CONTAINER_TAG}>")
    tree = _parse_hash_tree(container)
    tree.attributes = dict(root.attrib)
    return tree
