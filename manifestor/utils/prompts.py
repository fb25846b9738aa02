"""Interactive confirmation prompts."""

import click


class InteractivePrompt:
    """Asks the user yes/no questions on the terminal."""

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(click.style(message, fg="red", bold=True), default=default)


class AutoConfirmPrompt(InteractivePrompt):
    """Answers every question with a fixed response (non-interactive runs)."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer

    def confirm(self, message: str, default: bool = False) -> bool:
        return self.answer
