import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from quarto_record.errors import SlidesError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Replace ``${name}`` placeholders; unknown names render as empty strings."""
    return _PLACEHOLDER.sub(lambda m: variables.get(m.group(1), ""), template)


@dataclass
class SlideInfo:
    item_id: str
    screenshot: str
    file: Optional[str] = None


class SlideGenerator:
    """Collects one slide per item and writes them as a single slides document."""

    def __init__(self, screenshot_name: str = "screenshot.png"):
        self.screenshot_name = screenshot_name
        self.slides: List[SlideInfo] = []

    def add_slide(self, item_id: str, screenshot_path: str, file_path: Optional[str] = None) -> None:
        self.slides.append(SlideInfo(item_id=item_id, screenshot=screenshot_path, file=file_path))

    def render(self, template: str) -> str:
        parts = []
        for slide in self.slides:
            # Paths are relative to the output directory the document lives in
            variables = {
                "screenshot": f"{slide.item_id}/{self.screenshot_name}",
                "file": f"{slide.item_id}/{os.path.basename(slide.file)}" if slide.file else "",
                "itemId": slide.item_id,
            }
            parts.append(f"{render_template(template, variables)}\n\n")
        return "---\n\n".join(parts)

    def generate_slides(self, output_dir: str, template_path: str, output_filename: str) -> str:
        try:
            with open(template_path, "r", encoding="utf-8") as f:
                template = f.read()
        except OSError as e:
            raise SlidesError(f"Error reading slides template {template_path}: {e}") from e

        output_path = os.path.join(output_dir, output_filename)
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(self.render(template))
        except OSError as e:
            raise SlidesError(f"Error writing slides to {output_path}: {e}") from e

        logger.info(f"Generated {output_filename} in {output_dir}")
        return output_path
