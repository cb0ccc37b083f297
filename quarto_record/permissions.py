import logging
import platform
import shutil
from typing import List

from quarto_record.config import Settings
from quarto_record.errors import PrerequisiteError

logger = logging.getLogger(__name__)


def required_tools(settings: Settings, history_mode: bool) -> List[str]:
    tools = [settings.quarto_command[0], "screencapture", "defaults"]
    if history_mode:
        tools.append("git")
    return tools


def check_prerequisites(settings: Settings, history_mode: bool) -> None:
    """Fail before any side effect if an external tool the run needs is missing."""
    missing = [tool for tool in required_tools(settings, history_mode) if shutil.which(tool) is None]
    if missing:
        raise PrerequisiteError(
            f"Required command(s) not found on PATH: {', '.join(missing)}"
        )


def display_screen_capture_permission_warning() -> None:
    if platform.system() != "Darwin":
        logger.warning("Screen capture uses the macOS 'screencapture' tool and may not work on this platform")
        return
    logger.warning("⚠️  IMPORTANT: Screen Recording Permission Required ⚠️")
    logger.warning("This utility requires screen recording permission to capture Quarto previews.")
    logger.warning("If prompted, please allow screen recording access for the terminal application.")
    logger.warning("You may need to go to System Settings > Privacy & Security > Screen Recording")
    logger.warning("and ensure your terminal application has permission.")
