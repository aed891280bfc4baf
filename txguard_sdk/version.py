"""
Version of the txguard SDK.

Installed distributions report their metadata version; a source checkout
reads it from pyproject.toml.
"""
import importlib.metadata
import pathlib
from typing import Optional

import tomli

DISTRIBUTION_NAME = "txguard-sdk"
DEFAULT_VERSION = "0.1.0"
PYPROJECT_PATH = pathlib.Path(__file__).parent.parent / "pyproject.toml"


def _pyproject_version(path: pathlib.Path = PYPROJECT_PATH) -> Optional[str]:
    try:
        with path.open("rb") as f:
            return tomli.load(f)["project"]["version"]
    except (FileNotFoundError, KeyError, tomli.TOMLDecodeError):
        return None


def get_version() -> str:
    try:
        return importlib.metadata.version(DISTRIBUTION_NAME)
    except importlib.metadata.PackageNotFoundError:
        return _pyproject_version() or DEFAULT_VERSION


__version__ = get_version()
