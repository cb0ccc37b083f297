import pytest

from quarto_record import permissions
from quarto_record.config import Settings
from quarto_record.errors import PrerequisiteError


def test_git_only_required_for_history(monkeypatch):
    settings = Settings()
    assert "git" in permissions.required_tools(settings, history_mode=True)
    assert "git" not in permissions.required_tools(settings, history_mode=False)


def test_missing_tools_are_reported(monkeypatch):
    available = {"quarto", "defaults"}
    monkeypatch.setattr(
        permissions.shutil, "which", lambda tool: f"/usr/bin/{tool}" if tool in available else None
    )

    with pytest.raises(PrerequisiteError, match="screencapture, git"):
        permissions.check_prerequisites(Settings(), history_mode=True)


def test_configured_quarto_command_is_checked(mocker):
    which = mocker.patch.object(permissions.shutil, "which", return_value="/usr/bin/tool")

    permissions.check_prerequisites(Settings(quarto_command=["/opt/quarto/bin/quarto"]), history_mode=False)

    assert which.call_args_list[0] == mocker.call("/opt/quarto/bin/quarto")
    assert which.call_count == 3


def test_permission_warning_on_macos(monkeypatch, captured_logs):
    monkeypatch.setattr(permissions.platform, "system", lambda: "Darwin")
    permissions.display_screen_capture_permission_warning()
    assert "Screen Recording Permission Required" in captured_logs.text
