"""User-facing export messages.

Interactive exports show each message through a dialog callback; batch
exports log it. Every message is also collected for the export report.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DialogCallback = Callable[[str, str], None]


class Diagnostics:
    """Message channel for one export run.

    Parameters
    ----------
    interactive : bool
        Route messages to ``dialog`` instead of the log
    dialog : callable, optional
        ``dialog(title, message)``; without it messages are logged even
        in interactive mode
    title : str
        Dialog title
    """

    def __init__(
        self,
        interactive: bool = False,
        dialog: Optional[DialogCallback] = None,
        title: str = "Gerber export"
    ):
        self.interactive = interactive
        self.dialog = dialog
        self.title = title
        self.messages: List[str] = []

    def report(self, message: str, level: int = logging.WARNING) -> None:
        self.messages.append(message)
        if self.interactive and self.dialog is not None:
            self.dialog(self.title, message)
            return
        logger.log(level, message)

    def __len__(self) -> int:
        return len(self.messages)
