"""Tests for event display"""

import io

import pytest

from aptwrap.cli import colors
from aptwrap.cli.display import EventPrinter, format_event, render_bar
from aptwrap.core.events import (
    Action,
    ConffilePrompt,
    FetchedFile,
    PackageAction,
    PackageCount,
    PackageError,
    PercentComplete,
    TransactionSummary,
    WaitingOnLock,
)


@pytest.fixture(autouse=True)
def no_color():
    colors.init(nocolor=True)
    yield
    colors.init(nocolor=True)


class TestFormatEvent:
    """Tests for format_event."""

    def test_bar(self):
        assert render_bar(50, width=10) == '[█████░░░░░]'
        assert render_bar(0, width=4) == '[░░░░]'
        assert render_bar(100, width=4) == '[████]'

    def test_percent(self):
        line = format_event(PercentComplete(42.0, "Installing vim"), bar_width=10)
        assert line == '[████░░░░░░]  42% Installing vim'

    def test_count(self):
        assert format_event(PackageCount(3, 10, "vim", "Installing")) == "(3/10) Installing vim"

    def test_fetch(self):
        event = FetchedFile(3, "http://deb.debian.org/debian", "bookworm/main amd64 vim", "1,728 kB")
        assert format_event(event) == "Get:3 bookworm/main amd64 vim (1,728 kB)"

    def test_action(self):
        event = PackageAction(Action.SETTING_UP, "vim", "2:9.0")
        assert format_event(event) == "Setting up vim 2:9.0"

    def test_summary(self):
        line = format_event(TransactionSummary(3, 1, 0, 2))
        assert line == "3 upgraded, 1 newly installed, 0 to remove, 2 not upgraded"

    def test_error(self):
        assert format_event(PackageError("vim", 10.0, "boom")) == "Error: vim: boom"


    def test_conffile_prompt(self):
        event = ConffilePrompt("/etc/ssh/sshd_config", 60.0, "/etc/ssh/sshd_config", "/etc/ssh/sshd_config.dpkg-new")
        assert format_event(event) == "Configuration file /etc/ssh/sshd_config was modified (pending decision)"

    def test_progress_bar_is_blue(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)

        class Tty(io.StringIO):
            def isatty(self):
                return True

        colors.init(stream=Tty())
        line = format_event(PercentComplete(50.0, "x"), bar_width=4)
        assert line == "\033[94m[██░░]\033[0m  50% x"


class TestEventPrinter:
    """Tests for EventPrinter."""

    def test_waiting_shown_once(self):
        out = io.StringIO()
        printer = EventPrinter(stream=out)
        printer.readiness(False)
        printer.readiness(False)
        printer.readiness(True)
        printer.readiness(False)
        assert out.getvalue().count("Waiting for another package manager") == 2

    def test_quiet_hides_progress(self):
        out = io.StringIO()
        printer = EventPrinter(stream=out, quiet=True)
        printer(PercentComplete(10.0, ""))
        printer(PackageError("vim", 10.0, "boom"))
        assert out.getvalue() == "Error: vim: boom\n"

    def test_lines_in_order(self):
        out = io.StringIO()
        printer = EventPrinter(stream=out)
        printer(PercentComplete(10.0, "a"))
        printer(WaitingOnLock())
        printer(PackageAction(Action.REMOVING, "nano"))
        printer.finish()
        lines = out.getvalue().splitlines()
        assert lines[0].endswith("10% a")
        assert lines[1].startswith("Waiting")
        assert lines[2] == "Removing nano"
