import logging
import os
import sys

import pytest
from PIL import Image

from quarto_record import cli_app, orchestrator
from quarto_record.errors import CaptureFailedError, FatalArgumentError
from quarto_record.preview.process_table import ProcessTable
from quarto_record.models import RunItem, ScreenRegion

ITEM_IDS = ["a1b2c3d", "e4f5a6b", "c7d8e9f"]


class FakeHistoryProvider:
    def __init__(self, repo_dir, start_commit=None):
        self.repo_dir = repo_dir

    def items(self):
        return [RunItem(id=item_id, description=f"commit {item_id}") for item_id in ITEM_IDS]


class NoopWorkspace:
    def __init__(self, repo_dir):
        pass

    def prepare(self, item):
        pass


class PillowCapturer:
    """Writes a real image instead of calling screencapture."""

    fail_on = None
    calls = 0
    regions = []

    def __init__(self, region, image_format="png"):
        self.region = region
        self.image_format = image_format

    async def capture(self, output_path):
        PillowCapturer.calls += 1
        PillowCapturer.regions.append(self.region)
        if PillowCapturer.calls == PillowCapturer.fail_on:
            raise CaptureFailedError("Screen capture failed with status 1")
        Image.new("RGB", (int(self.region.width), int(self.region.height))).save(output_path)
        return output_path


@pytest.fixture(autouse=True)
def remove_log_handlers():
    yield
    root = logging.getLogger()
    for handler in cli_app._installed_handlers:
        root.removeHandler(handler)
        handler.close()
    cli_app._installed_handlers.clear()


@pytest.fixture
def cli_env(monkeypatch, temp_dir, fake_quarto):
    """Replace the OS collaborators; the preview lifecycle stays real."""
    monkeypatch.setattr(cli_app, "check_prerequisites", lambda settings, history_mode: None)
    monkeypatch.setattr(
        cli_app, "get_last_selection_region", lambda: ScreenRegion(x=0, y=0, width=32, height=24)
    )
    monkeypatch.setattr(orchestrator, "GitHistoryProvider", FakeHistoryProvider)
    monkeypatch.setattr(orchestrator, "GitCheckoutWorkspace", NoopWorkspace)
    monkeypatch.setattr(orchestrator, "ScreenCapturer", PillowCapturer)
    monkeypatch.setattr(PillowCapturer, "calls", 0)
    monkeypatch.setattr(PillowCapturer, "fail_on", None)
    monkeypatch.setattr(PillowCapturer, "regions", [])

    config = temp_dir / "settings.toml"
    config.write_text(
        "[quarto_record]\n"
        f"quarto_command = [{_toml_str(sys.executable)}, {_toml_str(str(fake_quarto))}, \"ready\"]\n"
        "settle_delay = 0.05\n"
        "render_delay = 0.0\n"
        "terminate_timeout = 1.0\n"
        "sweep_grace = 0.1\n"
        f"sweep_pattern = {_toml_str(str(fake_quarto))}\n"
    )
    return temp_dir, config, fake_quarto


def _toml_str(value: str) -> str:
    return "'" + value + "'"


def base_argv(temp_dir, config):
    return [
        str(temp_dir / "out"),
        "--input",
        str(temp_dir),
        "--config",
        str(config),
        "--log-dir",
        str(temp_dir / "logs"),
    ]


def test_three_items_end_to_end(cli_env):
    temp_dir, config, fake_quarto = cli_env

    assert cli_app.main(base_argv(temp_dir, config)) == 0

    out = temp_dir / "out"
    assert sorted(os.listdir(out)) == sorted(ITEM_IDS)
    for item_id in ITEM_IDS:
        assert os.listdir(out / item_id) == ["screenshot.png"]
        assert os.path.getsize(out / item_id / "screenshot.png") > 0
    assert ProcessTable().find(str(fake_quarto)) == []


def test_region_is_read_once_per_run(cli_env, monkeypatch):
    temp_dir, config, _ = cli_env
    selections = [
        ScreenRegion(x=0, y=0, width=32, height=24),
        ScreenRegion(x=100, y=50, width=16, height=12),
        ScreenRegion(x=200, y=75, width=8, height=6),
    ]
    reads = []

    def changing_selection():
        reads.append(len(reads))
        return selections[len(reads) - 1]

    monkeypatch.setattr(cli_app, "get_last_selection_region", changing_selection)

    assert cli_app.main(base_argv(temp_dir, config)) == 0

    assert len(reads) == 1
    assert PillowCapturer.regions == [selections[0]] * len(ITEM_IDS)
    for item_id in ITEM_IDS:
        with Image.open(temp_dir / "out" / item_id / "screenshot.png") as image:
            assert image.size == (32, 24)


def test_capture_failure_on_second_item_exits_1(cli_env):
    temp_dir, config, fake_quarto = cli_env
    PillowCapturer.fail_on = 2

    assert cli_app.main(base_argv(temp_dir, config)) == 1

    out = temp_dir / "out"
    assert (out / ITEM_IDS[0] / "screenshot.png").exists()
    assert not (out / ITEM_IDS[2]).exists()
    assert ProcessTable().find(str(fake_quarto)) == []


def test_copy_file_and_slides(cli_env):
    temp_dir, config, _ = cli_env
    copy_source = temp_dir / "notes.md"
    copy_source.write_text("notes")
    template = temp_dir / "slide.qmd"
    template.write_text("![${itemId}](${screenshot}) ${file}")

    argv = base_argv(temp_dir, config) + [
        "--copy-file",
        str(copy_source),
        "--slides-template",
        str(template),
        "--slides-output",
        "deck.qmd",
    ]
    assert cli_app.main(argv) == 0

    out = temp_dir / "out"
    for item_id in ITEM_IDS:
        assert (out / item_id / "notes.md").read_text() == "notes"
    deck = (out / "deck.qmd").read_text()
    assert f"![{ITEM_IDS[0]}]({ITEM_IDS[0]}/screenshot.png) {ITEM_IDS[0]}/notes.md" in deck


def test_start_commit_and_profiles_are_exclusive(monkeypatch, temp_dir):
    def fail(*args, **kwargs):
        raise AssertionError("nothing may run after an argument error")

    monkeypatch.setattr(cli_app, "build_orchestrator", fail)
    monkeypatch.setattr(cli_app, "get_last_selection_region", fail)

    argv = [str(temp_dir / "out"), "--start-commit", "a1b2c3d", "--profiles", "1"]
    assert cli_app.main(argv) == 1
    assert not (temp_dir / "out").exists()


def test_unknown_flag_is_fatal(capsys, temp_dir):
    assert cli_app.main([str(temp_dir / "out"), "--frobnicate"]) == 1
    assert "unrecognized arguments: --frobnicate" in capsys.readouterr().err


def test_output_dir_is_required():
    with pytest.raises(FatalArgumentError):
        cli_app.parse_args([])


def test_profiles_flag_defaults_to_first_group():
    args = cli_app.parse_args(["out", "--profiles"])
    assert args.profile_group == 0
    assert cli_app.parse_args(["out", "--profiles", "2"]).profile_group == 2
    assert cli_app.parse_args(["out"]).profile_group is None


def test_profiles_before_output_dir():
    args = cli_app.parse_args(["--profiles=2", "out"])
    assert (args.profile_group, args.output_dir) == (2, "out")

    # Without "=" the next token is taken as the group index
    with pytest.raises(FatalArgumentError, match="invalid int value"):
        cli_app.parse_args(["--profiles", "out"])
    assert "OUTPUT_DIR first" in " ".join(cli_app.build_parser().format_help().split())


def test_negative_profile_group_is_fatal():
    with pytest.raises(FatalArgumentError):
        cli_app.parse_args(["out", "--profiles=-1"])


def test_options_resolve_paths(temp_dir):
    os.chdir(temp_dir)
    args = cli_app.parse_args(["out", "--copy-file", "notes.md", "--file", "index.qmd"])
    options = cli_app.options_from_args(args)

    assert options.output_dir == os.path.join(os.getcwd(), "out")
    assert options.input_dir == os.getcwd()
    assert options.copy_file == os.path.join(os.getcwd(), "notes.md")
    # Passed to quarto as given, relative to the input directory
    assert options.file == "index.qmd"
    assert not options.profile_mode


def test_invalid_config_exits_1(monkeypatch, temp_dir):
    monkeypatch.setattr(cli_app, "check_prerequisites", lambda settings, history_mode: None)
    config = temp_dir / "bad.toml"
    config.write_text("readiness_timeout = -1\n")

    argv = [str(temp_dir / "out"), "--config", str(config), "--log-dir", str(temp_dir / "logs")]
    assert cli_app.main(argv) == 1


def test_logs_are_written(cli_env):
    temp_dir, config, _ = cli_env

    cli_app.main(base_argv(temp_dir, config))

    logs = os.listdir(temp_dir / "logs")
    assert any(name.startswith("normal-") for name in logs)
    assert any(name.startswith("debug-") for name in logs)
