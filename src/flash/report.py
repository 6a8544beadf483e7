import os
from pathlib import Path
from typing import Iterable, Optional, Union

from rich.console import Console

from flash.logger import setup_logger
from flash.parser import Vulnerability

logger = setup_logger(__name__)

REPORT_TITLE = "# Vulnerability Report"
FILE_MODE = 0o644


def generate_markdown(vulnerabilities: Iterable[Vulnerability]) -> str:
    lines = [f"{REPORT_TITLE}\n\n"]
    for i, vuln in enumerate(vulnerabilities, start=1):
        lines.append(f"## {i}. {vuln.title}\n")
        lines.append(f"**Description**: {vuln.description}\n\n")
        lines.append(f"**Proof of Concept**:\n```\n{vuln.proof_of_concept}\n```\n\n")
        lines.append(f"**Severity**: {vuln.severity}\n\n")
        lines.append(f"**Vulnerable Code**:\n```\n{vuln.vulnerable_code}\n```\n\n")
        lines.append(f"**Recommended Fix**:\n```\n{vuln.recommended_fix}\n```\n\n")
        lines.append("---\n\n")
    return "".join(lines)


def _write_text(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.chmod(path, FILE_MODE)
    # Verify the file landed with content
    if not path.exists():
        raise OSError(f"Failed to create markdown file: {path}")
    if path.stat().st_size == 0:
        raise OSError(f"Saved markdown file is empty: {path}")
    return path


def write_markdown(vulnerabilities: Iterable[Vulnerability], path: Union[str, Path]) -> Path:
    """Render the report and overwrite `path` with it."""
    content = generate_markdown(vulnerabilities)
    logger.debug(f"Generated markdown content: \n{content}")
    try:
        written = _write_text(Path(path), content)
    except OSError as e:
        logger.error(f"Failed to write markdown file: {e}")
        raise
    logger.info(f"Markdown report saved to: {written}")
    return written


def print_markdown(vulnerabilities: Iterable[Vulnerability], console: Optional[Console] = None) -> str:
    """Write the same text write_markdown saves straight to the console stream."""
    content = generate_markdown(vulnerabilities)
    out = console or Console()
    # Console.print expands tabs and drops control bytes; code snippets must survive as-is.
    out.file.write(content)
    out.file.flush()
    return content


def save_markdown(name: Union[str, Path], content: str) -> Path:
    """Write arbitrary markdown to <name>.md."""
    return _write_text(Path(f"{name}.md"), content)
