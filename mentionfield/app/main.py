from __future__ import annotations

import argparse
import logging
import os
import sys

from PySide6.QtWidgets import QApplication, QPushButton, QVBoxLayout, QWidget

from mentionfield.app import config
from mentionfield.app.ui.mention_edit import MentionPreview, MentionSuggestionList, MentionTextEdit
from mentionfield.editing.mentionable import SimpleMentionable


# ============================================================================
# DEBUG CONFIGURATION - Environment Variables
# ============================================================================
# MENTIONFIELD_DEBUG              - DEBUG level logging for every module
# MENTIONFIELD_DETAILED_LOGGING   - Per-keystroke candidate/resolution tracing
#
# Example:
#   MENTIONFIELD_DEBUG=1 MENTIONFIELD_DETAILED_LOGGING=1 mentionfield-demo
# ============================================================================

def _debug_enabled(var_name: str) -> bool:
    """Check if a debug flag is enabled."""
    return os.getenv(var_name, "0") not in ("0", "false", "False", "", None)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mention text field demo.")
    parser.add_argument(
        "--names",
        default="John,Jordan,Julia,Mina,민수",
        help="Comma separated labels offered as mentions.",
    )
    parser.add_argument(
        "--export-template",
        default="@{label}",
        help="Format used when exporting a mention ({label} and {full_label} are available).",
    )
    return parser.parse_args(argv)


def build_pool(names: str, export_template: str) -> list[SimpleMentionable]:
    pool: list[SimpleMentionable] = []
    for raw in names.split(","):
        label = raw.strip()
        if label:
            pool.append(SimpleMentionable(label, export_template=export_template))
    return pool


class DemoWindow(QWidget):
    def __init__(self, pool: list[SimpleMentionable]) -> None:
        super().__init__()
        self.setWindowTitle("Mention field")
        layout = QVBoxLayout(self)
        self.editor = MentionTextEdit()
        self.editor.set_mentionables(pool)
        self.suggestions = MentionSuggestionList()
        self.suggestions.attach(self.editor)
        self.preview = MentionPreview(self.editor)
        export_button = QPushButton("Export")
        export_button.clicked.connect(self._print_value)
        layout.addWidget(self.editor, 1)
        layout.addWidget(self.suggestions)
        layout.addWidget(self.preview)
        layout.addWidget(export_button)
        self.resize(480, 360)

    def _print_value(self) -> None:
        print(self.editor.mentioned_value())


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if _debug_enabled("MENTIONFIELD_DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config.init_settings()
    app = QApplication.instance() or QApplication(sys.argv)
    window = DemoWindow(build_pool(args.names, args.export_template))
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
