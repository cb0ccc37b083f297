"""
Run orchestrator.

Processes items strictly one after another:

    prepare workspace -> start preview -> capture -> stop preview -> copy artifacts

A failure while starting, capturing or copying aborts the whole run. The
preview of the current item is always stopped before such an error leaves
this module.
"""

import asyncio
import logging
import os
from typing import List, Optional, Protocol

from quarto_record.capture import ScreenCapturer, copy_artifact
from quarto_record.config import Settings
from quarto_record.preview.controller import PreviewController
from quarto_record.sequence import GitHistoryProvider, ProfileGroupProvider
from quarto_record.slides import SlideGenerator
from quarto_record.models import PreviewRequest, RunItem, RunOptions, ScreenRegion
from quarto_record.workspace import GitCheckoutWorkspace, StaticWorkspace

logger = logging.getLogger(__name__)


class SequenceProvider(Protocol):
    def items(self) -> List[RunItem]: ...


class Workspace(Protocol):
    def prepare(self, item: RunItem) -> None: ...


class Capturer(Protocol):
    async def capture(self, output_path: str) -> str: ...


class RunOrchestrator:
    def __init__(
        self,
        options: RunOptions,
        settings: Settings,
        provider: SequenceProvider,
        workspace: Workspace,
        controller: PreviewController,
        capturer: Capturer,
    ):
        self.options = options
        self.settings = settings
        self.provider = provider
        self.workspace = workspace
        self.controller = controller
        self.capturer = capturer
        self.screenshot_name = f"screenshot.{settings.screenshot_format}"
        self.slides = SlideGenerator(screenshot_name=self.screenshot_name)

    def request_for(self, item: RunItem) -> PreviewRequest:
        # Re-derived per item: in profile mode every item renders a different profile
        return PreviewRequest(
            target_file=self.options.file,
            profile_name=item.id if self.options.profile_mode else None,
        )

    async def run(self) -> List[str]:
        """Capture every item and return the per-item output directories."""
        logger.info("Retrieving items to process...")
        items = await asyncio.to_thread(self.provider.items)
        logger.info(f"Found {len(items)} items to process")

        item_dirs = []
        try:
            for index, item in enumerate(items, 1):
                item_dirs.append(await self.process_item(item, index, len(items)))
        finally:
            # Only reachable with a live preview if a stop was interrupted
            await self.controller.aclose()

        if self.options.slides_template:
            await asyncio.to_thread(
                self.slides.generate_slides,
                self.options.output_dir,
                self.options.slides_template,
                self.options.slides_output,
            )
        return item_dirs

    async def process_item(self, item: RunItem, index: int, total: int) -> str:
        logger.info(f"Processing item {index}/{total}: {item.id} - {item.description}")

        await asyncio.to_thread(self.workspace.prepare, item)

        item_dir = os.path.join(self.options.output_dir, item.id)
        os.makedirs(item_dir, exist_ok=True)
        logger.info(f"Created output directory: {item_dir}")

        handle = await self.controller.start(self.request_for(item))
        screenshot_path = os.path.join(item_dir, self.screenshot_name)
        try:
            logger.info("Waiting for Quarto to render...")
            await asyncio.sleep(self.settings.render_delay)

            logger.info(f"Capturing screenshot to {screenshot_path}...")
            await self.capturer.capture(screenshot_path)
            logger.info("Screenshot captured successfully")
        finally:
            await self.controller.stop(handle)

        copied: Optional[str] = None
        if self.options.copy_file:
            logger.info(f"Copying {self.options.copy_file} to {item_dir}...")
            copied = await asyncio.to_thread(copy_artifact, self.options.copy_file, item_dir)
            logger.info("File copied successfully")

        self.slides.add_slide(item.id, screenshot_path, copied)
        logger.info(f"Completed processing {item.id}")
        return item_dir


def build_orchestrator(
    options: RunOptions,
    settings: Settings,
    region: ScreenRegion,
) -> RunOrchestrator:
    if options.profile_mode:
        provider = ProfileGroupProvider(options.input_dir, options.profile_group)
        workspace = StaticWorkspace()
    else:
        provider = GitHistoryProvider(options.input_dir, options.start_commit)
        workspace = GitCheckoutWorkspace(options.input_dir)

    return RunOrchestrator(
        options=options,
        settings=settings,
        provider=provider,
        workspace=workspace,
        controller=PreviewController(settings=settings, cwd=options.input_dir),
        capturer=ScreenCapturer(region, image_format=settings.screenshot_format),
    )
