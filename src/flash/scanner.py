from pathlib import Path
from typing import Iterable, List, Union

from flash.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_EXTENSIONS = (".go",)


class ScanError(RuntimeError):
    pass


def _normalize_extensions(extensions: Iterable[str]) -> List[str]:
    out: List[str] = []
    for ext in extensions or []:
        ext = str(ext).strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        if ext not in out:
            out.append(ext)
    return out


def scan_file(path: Union[str, Path]) -> str:
    """Read one source file as text."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ScanError(f"unable to read the file: {e}") from e


def scan_directory(path: Union[str, Path], extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> List[Path]:
    """
    Recursively collect files under `path` whose suffix is one of `extensions`.
    Results are sorted so batch runs are repeatable.
    """
    root = Path(path)
    if not root.is_dir():
        raise ScanError(f"not a directory: {root}")
    wanted = _normalize_extensions(extensions)
    files = sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in wanted)
    logger.debug(f"Found {len(files)} files under {root} matching {wanted}")
    return files
