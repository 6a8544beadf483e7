from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Tuple

from flash.logger import setup_logger

logger = setup_logger(__name__)

SECTION_DELIMITER = "###"
FIELD_MARKER = "**"

# (prefix, attribute, multi_line)
FIELD_PREFIXES: Tuple[Tuple[str, str, bool], ...] = (
    ("**Title**:", "title", False),
    ("**Description**:", "description", True),
    ("**Proof of Concept**:", "proof_of_concept", True),
    ("**Severity**:", "severity", False),
    ("**Vulnerable Code**:", "vulnerable_code", True),
    ("**Recommended Fix**:", "recommended_fix", True),
)


class ParseError(ValueError):
    pass


class NoVulnerabilitiesFound(ParseError):
    pass


@dataclass
class Vulnerability:
    title: str = ""
    description: str = ""
    proof_of_concept: str = ""
    severity: str = ""
    vulnerable_code: str = ""
    recommended_fix: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def _match_prefix(line: str):
    for prefix, attr, multi_line in FIELD_PREFIXES:
        if line.startswith(prefix):
            return prefix, attr, multi_line
    return None


def _capture_block(first: str, following: List[str]) -> Tuple[str, int]:
    """
    Collect a multi-line value: the remainder of the label line plus every following
    line until one starts with ### or **. Returns (value, lines_consumed).
    """
    captured: List[str] = []
    if first:
        captured.append(first)
    consumed = 0
    for line in following:
        if line.startswith(SECTION_DELIMITER) or line.startswith(FIELD_MARKER):
            break
        captured.append(line)
        consumed += 1
    return "\n".join(captured).strip("\n"), consumed


def parse_section(section: str) -> Vulnerability:
    """
    Extract the six labelled fields from one ###-delimited block.
    Unlabelled lines outside a multi-line field are ignored.
    """
    vuln = Vulnerability()
    lines = [line.strip() for line in section.strip().split("\n")]
    i = 0
    while i < len(lines):
        match = _match_prefix(lines[i])
        if match is None:
            i += 1
            continue
        prefix, attr, multi_line = match
        rest = lines[i][len(prefix):].strip()
        if not multi_line:
            setattr(vuln, attr, rest)
            i += 1
            continue
        value, consumed = _capture_block(rest, lines[i + 1:])
        setattr(vuln, attr, value)
        i += 1 + consumed
    return vuln


def parse_vulnerabilities(content: str) -> List[Vulnerability]:
    """
    Turn a detailed-analysis reply into Vulnerability records, in reply order.

    Sections without a Title are dropped. Raises NoVulnerabilitiesFound when nothing
    survives, which also covers a reply that legitimately reports no issues.
    """
    logger.debug(f"Raw content received: {content}")

    vulnerabilities: List[Vulnerability] = []
    for section in (content or "").split(SECTION_DELIMITER):
        if not section.strip():
            continue
        vuln = parse_section(section)
        if vuln.title:
            vulnerabilities.append(vuln)

    if not vulnerabilities:
        raise NoVulnerabilitiesFound("no vulnerabilities found in the response")

    logger.debug(f"Parsed {len(vulnerabilities)} vulnerabilities")
    return vulnerabilities
