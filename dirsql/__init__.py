"""dirsql: an interactive SQL shell over CSV and TOML files."""
from __future__ import annotations
from importlib import metadata
import pathlib
import tomllib

PACKAGE_NAME = "dirsql"


def _read_pyproject_version() -> str | None:
    # Source checkout without an installed distribution
    pyproject = pathlib.Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        with pyproject.open("rb") as f:
            return tomllib.load(f).get("project", {}).get("version")
    except (OSError, tomllib.TOMLDecodeError):
        return None


try:
    __version__ = metadata.version(PACKAGE_NAME)
except metadata.PackageNotFoundError:
    __version__ = _read_pyproject_version() or "0.0.0.dev0"

__all__ = ["__version__"]
