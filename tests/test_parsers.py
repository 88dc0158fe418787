"""Tests for jmeter_copilot.parsers extraction, validation and reference lookup."""

import pytest

from jmeter_copilot.parsers.reference import find_jmx_reference, iter_jmx_candidates
from jmeter_copilot.parsers.xml_extractor import (
    XML_DECLARATION,
    contains_jmeter_xml,
    extract_xml,
    is_valid_jmeter_xml,
)
from tests.conftest import MINIMAL_JMX, fenced

SCENARIO_PLAN = '<jmeterTestPlan version="1.2"><hashTree><hashTree/></hashTree></jmeterTestPlan>'


# ======================================================================
# extract_xml
# ======================================================================


class TestExtractXml:
    """Unit tests for extract_xml()."""

    @pytest.mark.parametrize("text", [None, "", "   ", "\n\t\n"])
    def test_blank_input_yields_nothing(self, text):
        assert extract_xml(text) is None

    def test_no_markup(self):
        assert extract_xml("No markup here.") is None

    def test_fenced_block_with_xml_hint(self):
        text = f"Here:\n```xml\n{SCENARIO_PLAN}\n```\nDone."
        assert extract_xml(text) == SCENARIO_PLAN

    def test_fenced_block_without_hint(self):
        assert extract_xml(fenced(SCENARIO_PLAN, hint="")) == SCENARIO_PLAN

    def test_hint_is_case_insensitive(self):
        assert extract_xml(fenced(SCENARIO_PLAN, hint="XML")) == SCENARIO_PLAN

    @pytest.mark.parametrize("hint", ["jmx", "jmeter-xml", "xml "])
    def test_other_hints_are_not_kept(self, hint):
        assert extract_xml(fenced(SCENARIO_PLAN, hint=hint)) == SCENARIO_PLAN

    def test_fenced_body_is_trimmed_but_verbatim(self):
        text = f"```xml\n\n   {MINIMAL_JMX}   \n\n```"
        assert extract_xml(text) == MINIMAL_JMX

    def test_fenced_block_keeps_existing_declaration_untouched(self):
        assert extract_xml(fenced(MINIMAL_JMX)) == MINIMAL_JMX

    def test_fenced_block_without_declaration_is_not_given_one(self):
        result = extract_xml(fenced(SCENARIO_PLAN))
        assert not result.startswith("<?xml")

    def test_skips_blocks_without_root_tag(self):
        text = (
            "First some python:\n"
            "```python\nprint('hello')\n```\n"
            "Then the plan:\n"
            f"```xml\n{SCENARIO_PLAN}\n```\n"
        )
        assert extract_xml(text) == SCENARIO_PLAN

    def test_only_block_without_root_tag_yields_nothing(self):
        assert extract_xml("```xml\n<project><name>x</name></project>\n```") is None

    def test_first_qualifying_block_wins(self):
        second = SCENARIO_PLAN.replace('version="1.2"', 'version="9.9"')
        text = f"```xml\n{SCENARIO_PLAN}\n```\nor\n```xml\n{second}\n```"
        assert extract_xml(text) == SCENARIO_PLAN

    def test_raw_span_gets_declaration(self):
        text = f"Sure, the plan is {SCENARIO_PLAN} and that's it."
        assert extract_xml(text) == f"{XML_DECLARATION}\n{SCENARIO_PLAN}"

    def test_raw_span_with_declaration_is_not_doubled(self):
        text = f"Plan follows.\n{MINIMAL_JMX}\nEnjoy."
        result = extract_xml(text)
        assert result == MINIMAL_JMX
        assert result.count("<?xml") == 1

    def test_raw_span_includes_nested_structure(self):
        text = f"prefix {MINIMAL_JMX} suffix"
        result = extract_xml(text)
        assert result.endswith("</jmeterTestPlan>")
        assert "ResultCollector" in result

    def test_unclosed_fence_falls_back_to_raw_span(self):
        text = f"```xml\n{MINIMAL_JMX}"
        assert extract_xml(text) == MINIMAL_JMX

    def test_unclosed_root_yields_nothing(self):
        assert extract_xml('<jmeterTestPlan version="1.2"><hashTree>') is None

    def test_extraction_is_idempotent(self):
        for text in (fenced(MINIMAL_JMX), f"see {SCENARIO_PLAN}"):
            once = extract_xml(text)
            assert extract_xml(once) == once

    def test_contains_jmeter_xml(self):
        assert contains_jmeter_xml(fenced(SCENARIO_PLAN))
        assert not contains_jmeter_xml("No markup here.")
        assert not contains_jmeter_xml(None)


# ======================================================================
# is_valid_jmeter_xml
# ======================================================================


class TestIsValidJmeterXml:

    def test_scenario_document_is_plausible(self):
        assert is_valid_jmeter_xml(extract_xml(f"Here:\n```xml\n{SCENARIO_PLAN}\n```\nDone."))

    def test_full_document_is_plausible(self):
        assert is_valid_jmeter_xml(MINIMAL_JMX)

    @pytest.mark.parametrize("xml", [None, "", "   "])
    def test_blank_is_not_plausible(self, xml):
        assert is_valid_jmeter_xml(xml) is False

    @pytest.mark.parametrize("xml", [
        "<hashTree></hashTree></jmeterTestPlan>",
        '<jmeterTestPlan version="1.2"><hashTree></hashTree>',
        '<jmeterTestPlan version="1.2"></jmeterTestPlan>',
        '<jmeterTestPlan version="1.2"><hashTree/></jmeterTestPlan>',
    ])
    def test_missing_required_tag(self, xml):
        assert is_valid_jmeter_xml(xml) is False


# ======================================================================
# find_jmx_reference
# ======================================================================


class TestFindJmxReference:

    @pytest.mark.parametrize("text", [None, "", "  "])
    def test_blank_input(self, text, tmp_path):
        assert find_jmx_reference(text, tmp_path) is None

    def test_missing_file_is_not_reported(self, tmp_path):
        assert find_jmx_reference("See results.jmx for the file", tmp_path) is None

    def test_inline_code_reference(self, tmp_path):
        (tmp_path / "plan.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        result = find_jmx_reference("I saved it to `plan.jmx`.", tmp_path)
        assert result == str(tmp_path / "plan.jmx")

    def test_bare_relative_reference(self, tmp_path):
        (tmp_path / "tests").mkdir()
        (tmp_path / "tests" / "checkout.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        result = find_jmx_reference("Written to tests/checkout.jmx.", tmp_path)
        assert result == str(tmp_path / "tests" / "checkout.jmx")

    def test_bare_absolute_reference(self, tmp_path):
        target = tmp_path / "abs-plan.jmx"
        target.write_text(MINIMAL_JMX, encoding="utf-8")
        result = find_jmx_reference(f"Saved it at {target} for you")
        assert result == str(target)

    def test_home_relative_reference(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("USERPROFILE", str(tmp_path))
        (tmp_path / "plans").mkdir()
        (tmp_path / "plans" / "a.jmx").write_text(MINIMAL_JMX, encoding="utf-8")

        assert list(iter_jmx_candidates("saved to ~/plans/a.jmx")) == ["~/plans/a.jmx"]
        assert find_jmx_reference("saved to ~/plans/a.jmx", "/elsewhere") == str(tmp_path / "plans" / "a.jmx")

    def test_extension_is_case_insensitive(self, tmp_path):
        (tmp_path / "LOAD.JMX").write_text(MINIMAL_JMX, encoding="utf-8")
        assert find_jmx_reference("Open LOAD.JMX in JMeter", tmp_path) == str(tmp_path / "LOAD.JMX")

    def test_first_existing_candidate_wins(self, tmp_path):
        (tmp_path / "second.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        (tmp_path / "third.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        text = "Try `first.jmx`, then `second.jmx` or third.jmx"
        assert find_jmx_reference(text, tmp_path) == str(tmp_path / "second.jmx")

    def test_directory_is_not_a_match(self, tmp_path):
        (tmp_path / "plans.jmx").mkdir()
        assert find_jmx_reference("Look in plans.jmx", tmp_path) is None

    def test_candidates_in_order(self):
        text = "`a.jmx` then dir/b.jmx and C:\\work\\c.jmx"
        assert list(iter_jmx_candidates(text)) == ["a.jmx", "dir/b.jmx", "C:\\work\\c.jmx"]

    def test_other_extensions_ignored(self):
        assert list(iter_jmx_candidates("results.jtl and plan.jmxx and notes.txt")) == []
