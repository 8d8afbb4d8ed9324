"""
assets.py – Image and font preloading.

Both preloaders read resource files off the event loop and keep the raw
bytes in memory so the first screen can render without touching the disk.
Decoding is left to the rendering layer; a resource counts as loaded once
it has been read and is non-empty.
"""

import asyncio
import logging
import os
from typing import Dict, Sequence

from config import APP_NAME
from errors import AssetLoadError

logger = logging.getLogger(APP_NAME)


def _read_resource(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            data = fh.read()
    except OSError as exc:
        raise AssetLoadError(f"Could not read resource {path}", exc) from exc
    if not data:
        raise AssetLoadError(f"Resource {path} is empty")
    return data


class FileAssetPreloader:
    """
    Preloads image resources.

    Attributes
    ----------
    cache : dict
        Resource path -> raw bytes for every successfully loaded resource.
    """

    def __init__(self) -> None:
        self.cache: Dict[str, bytes] = {}

    async def load(self, resources: Sequence[str]) -> None:
        """Read every path in *resources*; raises AssetLoadError on the first failure."""
        for path in resources:
            self.cache[path] = await asyncio.to_thread(_read_resource, path)
        logger.debug("Preloaded %d image resource(s)", len(resources))


class FileFontPreloader:
    """
    Preloads font files given as a name -> path map.

    Attributes
    ----------
    fonts : dict
        Font name -> raw bytes.
    """

    _EXTENSIONS = (".ttf", ".otf")

    def __init__(self) -> None:
        self.fonts: Dict[str, bytes] = {}

    async def load(self, fonts: Dict[str, str]) -> None:
        for name, path in fonts.items():
            if not path.lower().endswith(self._EXTENSIONS):
                raise AssetLoadError(f"Font {name!r} is not a TrueType/OpenType file: {os.path.basename(path)}")
            self.fonts[name] = await asyncio.to_thread(_read_resource, path)
        logger.debug("Preloaded %d font(s)", len(fonts))
