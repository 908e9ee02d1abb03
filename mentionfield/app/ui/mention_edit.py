from __future__ import annotations

import logging
from bisect import bisect_right
from typing import Iterable, Optional

from PySide6.QtCore import QEvent, Qt, Signal
from PySide6.QtGui import QKeyEvent, QSyntaxHighlighter, QTextCursor
from PySide6.QtWidgets import QLabel, QListWidget, QListWidgetItem, QPlainTextEdit, QToolTip

from mentionfield.app import config
from mentionfield.app.config import MentionConfig
from mentionfield.editing.engine import (
    MatchAction,
    MentionEditingEngine,
    MentionSyncError,
    Segment,
    count_char,
)
from mentionfield.editing.mentionable import Mentionable
from .mention_format import char_format_for, segments_to_html


logger = logging.getLogger(__name__)


def _utf16_positions(text: str) -> list[int]:
    """UTF-16 offset of every Python index in ``text``, plus one for the end."""
    positions = [0]
    offset = 0
    for ch in text:
        offset += 2 if ord(ch) > 0xFFFF else 1
        positions.append(offset)
    return positions


def qt_to_index(text: str, qt_pos: int) -> int:
    """Convert a QTextCursor position (UTF-16 units) into a Python string index."""
    positions = _utf16_positions(text)
    return max(0, bisect_right(positions, qt_pos) - 1)


def index_to_qt(text: str, index: int) -> int:
    positions = _utf16_positions(text)
    return positions[max(0, min(index, len(text)))]


class MentionHighlighter(QSyntaxHighlighter):
    """Draws every mention sentinel with the configured mention style."""

    def __init__(self, parent, mention_config: MentionConfig) -> None:  # type: ignore[override]
        super().__init__(parent)
        self._sentinel = mention_config.sentinel
        self.mention_format = char_format_for(mention_config.mention_style)

    def highlightBlock(self, text: str) -> None:  # type: ignore[override]
        idx = text.find(self._sentinel)
        if idx == -1:
            return
        positions = _utf16_positions(text)
        while idx != -1:
            self.setFormat(positions[idx], 1, self.mention_format)
            idx = text.find(self._sentinel, idx + 1)


class MentionSuggestionList(QListWidget):
    """Suggestion popup fed by ``MentionTextEdit.mentionablesChanged``."""

    mentionablePicked = Signal(object)

    def __init__(self, parent=None, max_suggestions: Optional[int] = None) -> None:
        super().__init__(parent)
        if max_suggestions is None:
            max_suggestions = config.load_max_suggestions()
        self._max_suggestions = max_suggestions
        self.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        self.itemClicked.connect(self._on_item_activated)
        self.itemActivated.connect(self._on_item_activated)
        self.hide()

    def attach(self, editor: "MentionTextEdit") -> None:
        editor.mentionablesChanged.connect(self.set_suggestions)
        self.mentionablePicked.connect(editor.pick_mentionable)
        editor.set_suggestion_list(self)

    def set_suggestions(self, mentionables: Iterable[Mentionable]) -> None:
        self.clear()
        for mentionable in list(mentionables)[: self._max_suggestions]:
            item = QListWidgetItem(mentionable.full_label)
            item.setData(Qt.UserRole, mentionable)
            self.addItem(item)
        if self.count():
            self.setCurrentRow(0)
            self.show()
        else:
            self.hide()

    def current_mentionable(self) -> Optional[Mentionable]:
        item = self.currentItem()
        return item.data(Qt.UserRole) if item else None

    def handle_key_press(self, key: int) -> bool:
        """Handle navigation keys forwarded by the editor.

        Returns True if the key was consumed.
        """
        if self.count() == 0 or self.isHidden():
            return False
        if key in (Qt.Key.Key_Tab, Qt.Key.Key_Return, Qt.Key.Key_Enter):
            item = self.currentItem()
            if item:
                self._on_item_activated(item)
                return True
        elif key == Qt.Key.Key_Escape:
            self.set_suggestions([])
            return True
        elif key == Qt.Key.Key_Down:
            row = self.currentRow()
            if row < self.count() - 1:
                self.setCurrentRow(row + 1)
            return True
        elif key == Qt.Key.Key_Up:
            row = self.currentRow()
            if row > 0:
                self.setCurrentRow(row - 1)
            return True
        return False

    def _on_item_activated(self, item: QListWidgetItem) -> None:
        mentionable = item.data(Qt.UserRole)
        if mentionable is not None:
            self.mentionablePicked.emit(mentionable)


class MentionTextEdit(QPlainTextEdit):
    """Plain text editor whose @mentions are stored as sentinel characters.

    The document always holds the raw text; ``mentioned_value()`` returns
    the text with every mention serialized and ``segments()`` the labelled
    view used by previews.
    """

    mentionablesChanged = Signal(list)  # Suggestions to show; empty list closes the popup
    mentionCommitted = Signal(object)  # Emits the picked Mentionable

    def __init__(self, parent=None, mention_config: Optional[MentionConfig] = None) -> None:
        super().__init__(parent)
        self._mention_config = mention_config or config.load_mention_config()
        self._engine = MentionEditingEngine(self._mention_config, listener=self._emit_suggestions)
        self._mentionables: list[Mentionable] = []
        self._suggestion_list: Optional[MentionSuggestionList] = None
        self._display_guard = False
        self.highlighter = MentionHighlighter(self.document(), self._mention_config)
        self.textChanged.connect(self._on_text_changed)
        self.cursorPositionChanged.connect(self._on_cursor_moved)

    @property
    def engine(self) -> MentionEditingEngine:
        return self._engine

    def set_mentionables(self, mentionables: Iterable[Mentionable]) -> None:
        """Replace the candidate pool used on the next edit."""
        self._mentionables = list(mentionables)

    def set_suggestion_list(self, widget: Optional[MentionSuggestionList]) -> None:
        self._suggestion_list = widget

    def mentions(self) -> tuple[Mentionable, ...]:
        return self._engine.mentions

    def mentioned_value(self) -> str:
        return self._engine.export()

    def segments(self, style=None) -> list[Segment]:
        return self._engine.render(style)

    def mention_at(self, index: int) -> Optional[Mentionable]:
        """Mention whose sentinel sits at Python index ``index``, if any."""
        text = self._engine.text
        if not 0 <= index < len(text) or text[index] != self._mention_config.sentinel:
            return None
        mentions = self._engine.mentions
        slot = count_char(text, self._mention_config.sentinel, index)
        return mentions[slot] if slot < len(mentions) else None

    def reset(self) -> None:
        """Clear the field and forget every mention."""
        self._display_guard = True
        try:
            self.clear()
            self._engine.clear()
        finally:
            self._display_guard = False
        self.mentionablesChanged.emit([])

    def pick_mentionable(self, mentionable: Mentionable) -> bool:
        """Commit ``mentionable`` for the candidate at the cursor."""
        text = self.toPlainText()
        self._engine.set_text(text, qt_to_index(text, self.textCursor().position()))
        if not self._engine.commit(mentionable):
            return False
        self._apply_engine_text()
        self.mentionCommitted.emit(mentionable)
        return True

    def _emit_suggestions(self, suggestions: list) -> None:
        self.mentionablesChanged.emit(suggestions)

    def _on_text_changed(self) -> None:
        if self._display_guard:
            return
        text = self.toPlainText()
        cursor = qt_to_index(text, self.textCursor().position())
        resolution = self._engine.on_text_changed(text, cursor, self._mentionables)
        if self._engine.text != text or resolution.action is MatchAction.COMMIT:
            self._apply_engine_text()
        if resolution.action is MatchAction.COMMIT:
            self.mentionCommitted.emit(resolution.payload)

    def _on_cursor_moved(self) -> None:
        if self._display_guard:
            return
        text = self.toPlainText()
        # Edits are handled by _on_text_changed.
        if text != self._engine.text:
            return
        self._engine.move_cursor(qt_to_index(text, self.textCursor().position()), self._mentionables)

    def _apply_engine_text(self) -> None:
        text = self._engine.text
        self._display_guard = True
        try:
            cursor = QTextCursor(self.document())
            cursor.beginEditBlock()
            cursor.select(QTextCursor.Document)
            cursor.insertText(text)
            cursor.endEditBlock()
            cursor.setPosition(index_to_qt(text, self._engine.cursor))
            self.setTextCursor(cursor)
        finally:
            self._display_guard = False

    def keyPressEvent(self, event: QKeyEvent) -> None:  # type: ignore[override]
        if self._suggestion_list is not None and self._suggestion_list.handle_key_press(event.key()):
            event.accept()
            return
        super().keyPressEvent(event)

    def event(self, event: QEvent) -> bool:  # type: ignore[override]
        if event.type() == QEvent.ToolTip:
            text = self.toPlainText()
            pos = self.cursorForPosition(self.viewport().mapFromGlobal(event.globalPos())).position()
            index = qt_to_index(text, pos)
            mentionable = self.mention_at(index) or self.mention_at(index - 1)
            if mentionable is not None:
                QToolTip.showText(event.globalPos(), mentionable.full_label, self)
            else:
                QToolTip.hideText()
                event.ignore()
            return True
        return super().event(event)


class MentionPreview(QLabel):
    """Read-only rendering of a MentionTextEdit with labels in place of sentinels."""

    def __init__(self, editor: MentionTextEdit, parent=None) -> None:
        super().__init__(parent)
        self._editor = editor
        self.setTextFormat(Qt.RichText)
        self.setWordWrap(True)
        editor.textChanged.connect(self.refresh)
        self.refresh()

    def refresh(self) -> None:
        try:
            segments = self._editor.segments()
        except MentionSyncError as exc:
            # Slots must not raise into the Qt event loop.
            logger.warning("Mention preview skipped: %s", exc)
            return
        self.setText(segments_to_html(segments))
