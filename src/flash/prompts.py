INITIAL_ANALYSIS_PROMPT = """You are a cybersecurity expert. Review this code for vulnerabilities. Provide a high-level summary of potential vulnerabilities you've identified."""

# Stage-2 prompt. Field labels must stay in sync with flash.parser.FIELD_PREFIXES.
DETAILED_ANALYSIS_PROMPT = """Based on the initial analysis: {summary}

Now, for each identified vulnerability, provide the following details:
- Title
- Description
- Proof of Concept
- Severity (Critical, High, Medium, Low)
- Vulnerable Code
- Recommended Fix

Format rules:
- Start every vulnerability with a line beginning with ###
- Write each field on its own line as **<Field>**: <value>, for example **Title**: SQL Injection in login
- Title and Severity must fit on a single line.
- Multi-line values (code, steps) go on the lines after the field label, without starting any line with ** or ###
"""


def detailed_analysis_prompt(summary: str) -> str:
    return DETAILED_ANALYSIS_PROMPT.format(summary=summary)
