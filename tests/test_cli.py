import io
import json

import pytest
import typer
from rich.console import Console
from typer.testing import CliRunner

from streamgrab import __main__ as entry
from streamgrab import __version__
from streamgrab.auth import AuthStore
from streamgrab.cli import app as cli_app
from streamgrab.cli.progress_manager import ProgressManager
from streamgrab.exceptions import ConfigurationError
from streamgrab.models.stream import ProgressEvent
from streamgrab.storage.registry import StreamRegistry

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config" / "config.ini"
    monkeypatch.setattr(cli_app, "CONFIG_FILE", path)
    return path


@pytest.fixture
def har_file(tmp_path):
    document = {
        "log": {
            "entries": [
                {
                    "request": {
                        "url": "https://cdn.example/show/master.m3u8",
                        "headers": [
                            {"name": "Cookie", "value": "sid=captured"},
                            {"name": "Referer", "value": "https://site.example/"},
                        ],
                    },
                    "response": {
                        "status": 200,
                        "headers": [
                            {
                                "name": "Content-Type",
                                "value": "application/vnd.apple.mpegurl",
                            }
                        ],
                    },
                }
            ]
        }
    }
    path = tmp_path / "session.har"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def test_version():
    result = runner.invoke(cli_app.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_writes_config(config_file):
    result = runner.invoke(cli_app.app, ["init", "--output", "/media", "--force"])

    assert result.exit_code == 0
    assert "output_dir = /media" in config_file.read_text(encoding="utf-8")


def test_validate_with_invalid_config(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[DEFAULT]\nconcurrency = 0\n", encoding="utf-8")

    result = runner.invoke(cli_app.app, ["validate"])

    assert result.exit_code == 1
    assert "invalid" in result.output


def test_scan_har_lists_streams(config_file, har_file):
    result = runner.invoke(cli_app.app, ["scan", str(har_file)])

    assert result.exit_code == 0
    assert "HLS" in result.output


def test_parse_header_options():
    headers = cli_app.parse_header_options(["X-Token: abc", "Origin:https://o"])

    assert headers == {"x-token": "abc", "origin": "https://o"}


def test_parse_header_options_rejects_missing_colon():
    with pytest.raises(typer.BadParameter):
        cli_app.parse_header_options(["X-Token abc"])


def test_explicit_options_win_over_har_capture(har_file):
    auth_store = AuthStore()

    context = cli_app.build_cli_context(
        "sid=explicit",
        None,
        ["Authorization: Bearer t"],
        har_file,
        auth_store,
        StreamRegistry(),
    )

    assert context.cookie == "sid=explicit"
    assert context.authorization == "Bearer t"
    assert context.referer == "https://site.example/"


def test_progress_manager_tracks_events():
    console = Console(file=io.StringIO(), width=120)
    manager = ProgressManager(console)
    manager.add_acquisition("a1", "clip.ts")

    manager(ProgressEvent("a1", 2, 4))
    manager(ProgressEvent("other", 1, 1))
    manager.finish("a1", success=True)

    stats = manager.get_statistics()
    assert stats["events"] == 2
    assert stats["last_percent"] == 100
    task = manager.progress.tasks[0]
    assert task.completed == task.total == 4


def test_main_exits_nonzero_on_engine_error(monkeypatch):
    def failing_app():
        raise ConfigurationError("bad config")

    monkeypatch.setattr(entry, "app", failing_app)

    with pytest.raises(SystemExit) as excinfo:
        entry.main()

    assert excinfo.value.code == 1


def test_main_treats_interrupt_as_clean_exit(monkeypatch):
    def interrupted_app():
        raise KeyboardInterrupt

    monkeypatch.setattr(entry, "app", interrupted_app)

    with pytest.raises(SystemExit) as excinfo:
        entry.main()

    assert excinfo.value.code == 0
