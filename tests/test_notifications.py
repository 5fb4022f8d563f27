"""
Test suite for user-visible notifications.
"""

from io import StringIO

from rich.console import Console

from clientdesk.services.notifications import ConsoleNotifier, NullNotifier, Permission


def make_notifier(permission, ask=None):
    output = StringIO()
    console = Console(file=output, force_terminal=False, width=120)
    return ConsoleNotifier(permission, console=console, ask=ask), output


class TestConsoleNotifier:
    """Test permission-gated notifications."""

    def test_granted_prints(self):
        notifier, output = make_notifier(Permission.GRANTED)
        assert notifier.show("Template created", level="success") is True
        assert "Template created" in output.getvalue()

    def test_denied_is_silent(self):
        notifier, output = make_notifier("denied")
        assert notifier.notify("Template created") is False
        assert output.getvalue() == ""

    def test_default_asks_once(self):
        answers = []

        def ask():
            answers.append(True)
            return True

        notifier, output = make_notifier(Permission.DEFAULT, ask=ask)
        assert notifier.notify("Contact created", "Ada") is True
        assert notifier.notify("Contact deleted") is True
        assert answers == [True]
        assert notifier.permission is Permission.GRANTED
        assert "Ada" in output.getvalue()

    def test_show_does_not_ask(self):
        def ask():
            raise AssertionError("show must not prompt")

        notifier, _ = make_notifier(Permission.DEFAULT, ask=ask)
        assert notifier.show("Live update stopped") is False

    def test_declined_prompt(self):
        notifier, output = make_notifier(Permission.DEFAULT, ask=lambda: False)
        assert notifier.notify("Deal moved") is False
        assert notifier.permission is Permission.DENIED

    def test_closed_input_denies(self):
        def ask():
            raise EOFError

        notifier, _ = make_notifier(Permission.DEFAULT, ask=ask)
        assert notifier.request_permission() is Permission.DENIED

    def test_no_prompt_available_stays_default(self):
        notifier, _ = make_notifier(Permission.DEFAULT)
        assert notifier.request_permission() is Permission.DEFAULT
        assert notifier.notify("Deal moved") is False


def test_null_notifier():
    notifier = NullNotifier()
    assert notifier.notify("anything") is False
    assert notifier.request_permission() is Permission.DENIED
