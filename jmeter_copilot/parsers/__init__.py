"""Parsers for extracting and loading JMeter test plans from AI responses."""

from jmeter_copilot.parsers.loader import (
    FailureKind,
    ParseFailure,
    ParseResult,
    ParseSuccess,
    TestPlanLoader,
    parse_xml,
    parse_xml_file,
    save_test_plan,
)
from jmeter_copilot.parsers.reference import find_jmx_reference
from jmeter_copilot.parsers.plan_tree import HashTree, TestElement, load_tree, parse_tree
from jmeter_copilot.parsers.xml_extractor import (
    contains_jmeter_xml,
    extract_xml,
    is_valid_jmeter_xml,
)

__all__ = [
    "extract_xml",
    "contains_jmeter_xml",
    "is_valid_jmeter_xml",
    "find_jmx_reference",
    "load_tree",
    "parse_tree",
    "HashTree",
    "TestElement",
    "TestPlanLoader",
    "ParseResult",
    "ParseSuccess",
    "ParseFailure",
    "FailureKind",
    "parse_xml",
    "parse_xml_file",
    "save_test_plan",
]
