"""chipnft version string.

Installed builds report their distribution metadata; a source checkout falls
back to BASE_VERSION. CHIPNFT_VERSION overrides both.
"""

from __future__ import annotations

import os
from importlib import metadata as importlib_metadata

# Bump when the digest layout or the persisted key space changes.
BASE_VERSION = "0.1.0"


def _resolve() -> str:
    override = os.getenv("CHIPNFT_VERSION")
    if override:
        return override
    try:
        return importlib_metadata.version("chipnft")
    except importlib_metadata.PackageNotFoundError:
        return BASE_VERSION


__version__ = _resolve()

__all__ = ["__version__", "BASE_VERSION"]
