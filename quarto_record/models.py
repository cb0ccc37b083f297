"""Value objects shared across the recording pipeline."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class RunItem:
    """One unit of work in a run: a revision or a named profile."""

    id: str
    description: str
    author: Optional[str] = None
    date: Optional[str] = None


@dataclass(frozen=True)
class ScreenRegion:
    """Screen rectangle captured for every item of a run."""

    x: float
    y: float
    width: float
    height: float

    def as_capture_arg(self) -> str:
        return ",".join(_format_coord(v) for v in (self.x, self.y, self.width, self.height))


def _format_coord(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class PreviewRequest:
    target_file: Optional[str] = None
    profile_name: Optional[str] = None


@dataclass
class PreviewHandle:
    """A live preview server owned by the controller until it is stopped."""

    process: Any
    pid: int
    url: str
    request: PreviewRequest = field(default_factory=PreviewRequest)


@dataclass(frozen=True)
class RunOptions:
    """Resolved command line options for one run."""

    output_dir: str
    input_dir: str = "."
    file: Optional[str] = None
    start_commit: Optional[str] = None
    copy_file: Optional[str] = None
    profile_group: Optional[int] = None
    slides_template: Optional[str] = None
    slides_output: str = "slides.qmd"

    @property
    def profile_mode(self) -> bool:
        return self.profile_group is not None
