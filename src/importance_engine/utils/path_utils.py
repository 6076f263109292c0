from pathlib import Path


def find_repo_root(start: Path | None = None, marker: str = "pyproject.toml") -> Path:
    """Walk upwards from ``start`` until a folder containing ``marker`` is found.

    Args:
        start: Optional starting path. Defaults to the directory of this file.
        marker: Filename used to identify the repository root.

    Returns:
        The repository root as a :class:`Path`, or the current working
        directory when no marker is found (e.g. for a site-packages install).
    """
    p = Path(start) if start is not None else Path(__file__).resolve().parent
    if p.is_file():
        p = p.parent
    for candidate in [p, *p.parents]:
        if (candidate / marker).exists():
            return candidate
    return Path.cwd()
