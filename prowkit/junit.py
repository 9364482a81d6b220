"""Reading and writing JUnit XML test reports."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

__all__ = [
    "CaseStatus",
    "JunitProperty",
    "JunitCase",
    "JunitSuite",
    "JunitSuites",
    "unmarshal",
    "create_xml_error_msg",
]


class CaseStatus(str, Enum):
    """Result of a single test case."""

    FAILED = "failed"
    SKIPPED = "skipped"
    PASSED = "passed"


@dataclass
class JunitProperty:
    """A name/value property attached to a suite or case."""

    name: str = ""
    value: str = ""


@dataclass
class JunitCase:
    """A ``<testcase>`` element."""

    name: str = ""
    time: str = ""
    class_name: str = ""
    failure: str | None = None
    output: str | None = None
    error: str | None = None
    skipped: str | None = None
    properties: list[JunitProperty] | None = None

    def status(self) -> CaseStatus:
        """Return the status derived from the failure and skipped markers."""
        if self.failure is not None:
            return CaseStatus.FAILED
        if self.skipped is not None:
            return CaseStatus.SKIPPED
        return CaseStatus.PASSED

    def add_property(self, name: str, value: str) -> None:
        """Attach a property to this case."""
        if self.properties is None:
            self.properties = []
        self.properties.append(JunitProperty(name, value))


@dataclass
class JunitSuite:
    """A ``<testsuite>`` element."""

    name: str = ""
    time: str = ""
    failures: int = 0
    tests: int = 0
    test_cases: list[JunitCase] = field(default_factory=list)
    properties: list[JunitProperty] = field(default_factory=list)

    def add_test_case(self, case: JunitCase) -> None:
        """Append a case, updating the test and failure counters."""
        self.tests += 1
        if case.status() is CaseStatus.FAILED:
            self.failures += 1
        self.test_cases.append(case)


@dataclass
class JunitSuites:
    """A ``<testsuites>`` element."""

    suites: list[JunitSuite] = field(default_factory=list)

    def get_test_suite(self, name: str) -> JunitSuite:
        """Return the suite with the given name or raise LookupError."""
        for suite in self.suites:
            if suite.name == name:
                return suite
        raise LookupError(f"Test suite '{name}' not found")

    def add_test_suite(self, suite: JunitSuite) -> None:
        """Add a suite; raise ValueError if one with that name exists."""
        if any(existing.name == suite.name for existing in self.suites):
            raise ValueError(f"Test suite '{suite.name}' already exists")
        self.suites.append(suite)

    def to_bytes(self, prefix: str = "", indent: str = "") -> bytes:
        """Serialise to XML, indented when prefix or indent is given."""
        out: list[str] = []
        _render(_suites_node(self), prefix, indent, 0, out, bool(prefix or indent))
        return "".join(out).encode("utf-8")


# --- serialisation -----------------------------------------------------------

_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&#34;",
    "'": "&#39;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def _escape(text: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


@dataclass
class _Node:
    tag: str
    attrs: list[tuple[str, str]] = field(default_factory=list)
    text: str | None = None
    children: list["_Node"] = field(default_factory=list)


def _properties_node(props: list[JunitProperty]) -> _Node:
    return _Node(
        "properties",
        children=[_Node("property", [("name", p.name), ("value", p.value)]) for p in props],
    )


def _case_node(case: JunitCase) -> _Node:
    node = _Node("testcase", [("name", case.name), ("time", case.time), ("classname", case.class_name)])
    for tag, text in (
        ("failure", case.failure),
        ("system-out", case.output),
        ("system-err", case.error),
        ("skipped", case.skipped),
    ):
        if text is not None:
            node.children.append(_Node(tag, text=text))
    if case.properties is not None:
        node.children.append(_properties_node(case.properties))
    return node


def _suite_node(suite: JunitSuite) -> _Node:
    node = _Node(
        "testsuite",
        [
            ("name", suite.name),
            ("time", suite.time),
            ("failures", str(suite.failures)),
            ("tests", str(suite.tests)),
        ],
    )
    node.children.extend(_case_node(case) for case in suite.test_cases)
    node.children.append(_properties_node(suite.properties))
    return node


def _suites_node(suites: JunitSuites) -> _Node:
    return _Node("testsuites", children=[_suite_node(s) for s in suites.suites])


def _render(node: _Node, prefix: str, indent: str, depth: int, out: list[str], pretty: bool) -> None:
    lead = ""
    if pretty:
        lead = ("\n" if out else "") + prefix + indent * depth
    attrs = "".join(f' {key}="{_escape(value)}"' for key, value in node.attrs)
    opening = f"<{node.tag}{attrs}>"
    closing = f"</{node.tag}>"
    if node.text is not None:
        out.append(lead + opening + _escape(node.text) + closing)
    elif not node.children:
        out.append(lead + opening + closing)
    else:
        out.append(lead + opening)
        for child in node.children:
            _render(child, prefix, indent, depth + 1, out, pretty)
        out.append(("\n" + prefix + indent * depth if pretty else "") + closing)


# --- parsing -----------------------------------------------------------------

def _char_data(element: ET.Element) -> str:
    return "".join([element.text or ""] + [child.tail or "" for child in element])


def _parse_int(value: str | None) -> int:
    text = (value or "").strip()
    if not text:
        return 0
    try:
        return int(text, 10)
    except ValueError as exc:
        raise ValueError(f"invalid integer attribute {value!r}") from exc


def _parse_properties(element: ET.Element) -> list[JunitProperty]:
    return [
        JunitProperty(prop.get("name", ""), prop.get("value", ""))
        for prop in element
        if prop.tag == "property"
    ]


def _parse_case(element: ET.Element) -> JunitCase:
    case = JunitCase(
        name=element.get("name", ""),
        time=element.get("time", ""),
        class_name=element.get("classname", ""),
    )
    for child in element:
        if child.tag == "failure":
            case.failure = _char_data(child)
        elif child.tag == "system-out":
            case.output = _char_data(child)
        elif child.tag == "system-err":
            case.error = _char_data(child)
        elif child.tag == "skipped":
            case.skipped = _char_data(child)
        elif child.tag == "properties":
            if case.properties is None:
                case.properties = []
            case.properties.extend(_parse_properties(child))
    return case


def _parse_suite(element: ET.Element) -> JunitSuite:
    suite = JunitSuite(
        name=element.get("name", ""),
        time=element.get("time", ""),
        failures=_parse_int(element.get("failures")),
        tests=_parse_int(element.get("tests")),
    )
    for child in element:
        if child.tag == "testcase":
            suite.test_cases.append(_parse_case(child))
        elif child.tag == "properties":
            suite.properties.extend(_parse_properties(child))
    return suite


def unmarshal(buf: bytes | str) -> JunitSuites:
    """Parse a ``<testsuites>`` or a single ``<testsuite>`` document.

    A single suite is returned wrapped in a JunitSuites.
    """
    try:
        root = ET.fromstring(buf)
    except ET.ParseError as exc:
        raise ValueError(f"malformed JUnit XML: {exc}") from exc
    if root.tag == "testsuites":
        return JunitSuites([_parse_suite(child) for child in root if child.tag == "testsuite"])
    if root.tag == "testsuite":
        return JunitSuites([_parse_suite(root)])
    raise ValueError(f"expected element type <testsuite> but have <{root.tag}>")


def create_xml_error_msg(test_suite: str, test_name: str, err_msg: str, dest: str | Path) -> None:
    """Write a one-case JUnit report to dest; an empty err_msg means no failure."""
    suite = JunitSuite(name=test_suite)
    suite.add_test_case(JunitCase(name=test_name, failure=err_msg or None))
    suites = JunitSuites()
    suites.add_test_suite(suite)
    Path(dest).write_bytes(suites.to_bytes("", ""))