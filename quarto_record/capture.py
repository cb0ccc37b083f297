"""Screen region lookup, screenshot capture and artifact copying (macOS)."""

import asyncio
import logging
import os
import re
import shutil
import subprocess
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from quarto_record.errors import CaptureFailedError, CopyFailedError, ScreenRegionError
from quarto_record.models import ScreenRegion

logger = logging.getLogger(__name__)

# e.g. {Height = "1691.75"; Width = 1394; X = 4590; Y = "270.625";}
_COORD_PATTERNS = {
    name: re.compile(rf"\b{key}\s*=\s*\"?(-?[0-9.]+)\"?")
    for name, key in (("x", "X"), ("y", "Y"), ("width", "Width"), ("height", "Height"))
}


def parse_selection(output: str) -> ScreenRegion:
    values = {}
    for name, pattern in _COORD_PATTERNS.items():
        match = pattern.search(output)
        if not match:
            raise ScreenRegionError("Failed to parse screen capture selection coordinates")
        try:
            values[name] = float(match.group(1))
        except ValueError as e:
            raise ScreenRegionError(f"Invalid {name} in screen capture selection: {match.group(1)}") from e
    return ScreenRegion(**values)


def get_last_selection_region() -> ScreenRegion:
    """Read the rectangle last selected with the macOS screenshot tool."""
    try:
        proc = subprocess.run(
            ["defaults", "read", "com.apple.screencapture", "last-selection"],
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ScreenRegionError(f"Failed to get screen capture selection: {e}") from e

    if proc.returncode != 0:
        raise ScreenRegionError(
            "Failed to get screen capture selection: "
            f"{proc.stderr.strip() or 'no previous selection recorded'}"
        )
    region = parse_selection(proc.stdout.strip())
    logger.info(
        f"Using screen region x={region.x} y={region.y} width={region.width} height={region.height}"
    )
    return region


class ScreenCapturer:
    """Captures a fixed screen region with ``screencapture``."""

    def __init__(
        self,
        region: ScreenRegion,
        image_format: str = "png",
        command: Optional[List[str]] = None,
    ):
        self.region = region
        self.image_format = image_format
        self.command = command or ["screencapture"]

    async def capture(self, output_path: str) -> str:
        """Write a screenshot of the region to ``output_path``.

        Raises:
            CaptureFailedError: If the tool fails or the file is missing, empty or unreadable.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                "-x",
                "-t",
                self.image_format,
                "-R",
                self.region.as_capture_arg(),
                output_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except OSError as e:
            raise CaptureFailedError(f"Screen capture failed: {e}") from e

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise CaptureFailedError(f"Screen capture failed with status {proc.returncode}: {detail}")

        verify_image(output_path)
        return output_path


def verify_image(path: str) -> None:
    if not os.path.isfile(path):
        raise CaptureFailedError(f"Screen capture produced no file at {path}")
    if os.path.getsize(path) == 0:
        raise CaptureFailedError(f"Screen capture produced an empty file at {path}")
    try:
        with Image.open(path) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise CaptureFailedError(f"Screen capture at {path} is not a readable image: {e}") from e


def copy_artifact(source_path: str, dest_dir: str) -> str:
    """Copy ``source_path`` into ``dest_dir`` under its basename."""
    dest_path = os.path.join(dest_dir, os.path.basename(source_path))
    try:
        shutil.copy2(source_path, dest_path)
    except OSError as e:
        raise CopyFailedError(f"Failed to copy {source_path} to {dest_path}: {e}") from e
    return dest_path
