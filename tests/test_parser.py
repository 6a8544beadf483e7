import unittest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from flash.parser import (
    NoVulnerabilitiesFound,
    ParseError,
    Vulnerability,
    parse_section,
    parse_vulnerabilities,
)


SQLI_SECTION = """### 1. SQL Injection
**Title**: SQL Injection in login handler
**Description**: User input is concatenated into the query.
The id parameter is never sanitized.
**Proof of Concept**:
curl "http://localhost/login?id=1' OR '1'='1"
**Severity**: Critical
**Vulnerable Code**:
query := "SELECT * FROM users WHERE id = " + id
**Recommended Fix**:
Use parameterized queries:
db.Query("SELECT * FROM users WHERE id = ?", id)
"""

XSS_SECTION = """### 2. Reflected XSS
**Title**: Reflected XSS in search page
**Description**: The q parameter is echoed without escaping.
**Proof of Concept**:
/search?q=<script>alert(1)</script>
**Severity**: High
**Vulnerable Code**:
fmt.Fprintf(w, "Results for %s", q)
**Recommended Fix**:
html.EscapeString(q)
"""


class TestParseVulnerabilities(unittest.TestCase):
    def test_well_formed_sections_in_order(self):
        reply = "Here is the detailed analysis.\n\n" + SQLI_SECTION + "\n" + XSS_SECTION
        vulns = parse_vulnerabilities(reply)
        self.assertEqual(len(vulns), 2)

        first, second = vulns
        self.assertEqual(first.title, "SQL Injection in login handler")
        self.assertEqual(
            first.description,
            "User input is concatenated into the query.\nThe id parameter is never sanitized.",
        )
        self.assertEqual(first.proof_of_concept, "curl \"http://localhost/login?id=1' OR '1'='1\"")
        self.assertEqual(first.severity, "Critical")
        self.assertEqual(first.vulnerable_code, 'query := "SELECT * FROM users WHERE id = " + id')
        self.assertEqual(
            first.recommended_fix,
            'Use parameterized queries:\ndb.Query("SELECT * FROM users WHERE id = ?", id)',
        )

        self.assertEqual(second.title, "Reflected XSS in search page")
        self.assertEqual(second.severity, "High")
        self.assertEqual(second.vulnerable_code, 'fmt.Fprintf(w, "Results for %s", q)')

    def test_multi_line_field_stops_at_next_marker(self):
        vulns = parse_vulnerabilities("### **Title**: T\n**Description**: line1\nline2\n**Severity**: High")
        self.assertEqual(vulns[0].description, "line1\nline2")
        self.assertEqual(vulns[0].severity, "High")

    def test_section_without_title_is_dropped(self):
        with self.assertRaises(NoVulnerabilitiesFound):
            parse_vulnerabilities("### **Description**: foo")

    def test_untitled_section_dropped_but_others_kept(self):
        reply = "### **Description**: orphan\n### **Title**: Kept\n**Severity**: Low"
        vulns = parse_vulnerabilities(reply)
        self.assertEqual([v.title for v in vulns], ["Kept"])

    def test_no_sections_raises(self):
        cases = [
            "",
            "The code looks fine. No issues found.",
            "### \n### \n###",
            "### Title: missing bold markers",
        ]
        for reply in cases:
            with self.subTest(reply=reply):
                with self.assertRaises(NoVulnerabilitiesFound) as ctx:
                    parse_vulnerabilities(reply)
                self.assertIn("no vulnerabilities found", str(ctx.exception))

    def test_error_is_a_parse_error(self):
        self.assertTrue(issubclass(NoVulnerabilitiesFound, ParseError))
        self.assertTrue(issubclass(NoVulnerabilitiesFound, ValueError))

    def test_empty_title_value_drops_section(self):
        with self.assertRaises(NoVulnerabilitiesFound):
            parse_vulnerabilities("### **Title**:\n**Severity**: High")


class TestParseSection(unittest.TestCase):
    def test_field_table(self):
        cases = [
            (
                "fields in any order",
                "**Severity**: Medium\n**Recommended Fix**:\nupgrade\n**Title**: Outdated lib",
                {"title": "Outdated lib", "severity": "Medium", "recommended_fix": "upgrade"},
            ),
            (
                "prefix with no content gives empty string",
                "**Title**: X\n**Proof of Concept**:\n**Severity**: Low",
                {"title": "X", "proof_of_concept": "", "severity": "Low"},
            ),
            (
                "unrecognized lines are ignored",
                "Intro text\n**Title**: X\nrandom note\n**Impact**: big\nstray line\n**Severity**: Low",
                {"title": "X", "severity": "Low", "description": ""},
            ),
            (
                "lines are trimmed",
                "   **Title**:   Padded   \n  **Vulnerable Code**:\n    eval(input)\n  **Severity**: High  ",
                {"title": "Padded", "vulnerable_code": "eval(input)", "severity": "High"},
            ),
            (
                "multi-line value stops at bold marker even for unknown labels",
                "**Title**: X\n**Description**: a\nb\n**Note**: c\nd",
                {"description": "a\nb"},
            ),
            (
                "code fences are kept verbatim",
                "**Title**: X\n**Vulnerable Code**:\n```go\nexec.Command(cmd)\n```",
                {"vulnerable_code": "```go\nexec.Command(cmd)\n```"},
            ),
            (
                "blank edge lines are dropped",
                "**Title**: X\n**Description**:\n\nbody\n\n**Severity**: Low",
                {"description": "body"},
            ),
            (
                "severity stored raw",
                "**Title**: X\n**Severity**: high-ish (needs auth)",
                {"severity": "high-ish (needs auth)"},
            ),
            (
                "later duplicate field overrides",
                "**Title**: first\n**Title**: second",
                {"title": "second"},
            ),
        ]
        for name, section, expected in cases:
            with self.subTest(name):
                vuln = parse_section(section)
                for attr, value in expected.items():
                    self.assertEqual(getattr(vuln, attr), value, attr)

    def test_to_dict_has_all_fields(self):
        vuln = Vulnerability(title="t", severity="Low")
        self.assertEqual(
            vuln.to_dict(),
            {
                "title": "t",
                "description": "",
                "proof_of_concept": "",
                "severity": "Low",
                "vulnerable_code": "",
                "recommended_fix": "",
            },
        )


if __name__ == "__main__":
    unittest.main()
