"""Tests for confirmation prompts."""

from unittest.mock import patch

from manifestor.utils.prompts import AutoConfirmPrompt, InteractivePrompt


class TestPrompts:
    @patch("manifestor.utils.prompts.click.confirm", return_value=True)
    def test_interactive_prompt_uses_click(self, mock_confirm) -> None:
        assert InteractivePrompt().confirm("Retry?") is True
        mock_confirm.assert_called_once()
        assert mock_confirm.call_args.kwargs["default"] is False

    def test_auto_confirm(self) -> None:
        assert AutoConfirmPrompt().confirm("Retry?") is True
        assert AutoConfirmPrompt(answer=False).confirm("Retry?") is False
