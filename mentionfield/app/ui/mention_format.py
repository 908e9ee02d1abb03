from __future__ import annotations

import html
from typing import Iterable, Optional

from PySide6.QtGui import QColor, QFont, QTextCharFormat

from mentionfield.app.config import MentionStyle
from mentionfield.editing.engine import Segment


def char_format_for(style: Optional[MentionStyle]) -> QTextCharFormat:
    """Translate a MentionStyle into the QTextCharFormat the highlighter applies."""
    fmt = QTextCharFormat()
    if style is None:
        return fmt
    if style.bold:
        fmt.setFontWeight(QFont.Weight.Bold)
    fmt.setFontItalic(style.italic)
    fmt.setFontUnderline(style.underline)
    if style.color:
        fmt.setForeground(QColor(style.color))
    if style.background:
        fmt.setBackground(QColor(style.background))
    return fmt


def _css_for(style: Optional[MentionStyle]) -> str:
    if not isinstance(style, MentionStyle):
        return ""
    rules = []
    if style.bold:
        rules.append("font-weight:bold")
    if style.italic:
        rules.append("font-style:italic")
    if style.underline:
        rules.append("text-decoration:underline")
    if style.color:
        rules.append(f"color:{style.color}")
    if style.background:
        rules.append(f"background-color:{style.background}")
    return ";".join(rules)


def segments_to_html(segments: Iterable[Segment]) -> str:
    """Render segments as escaped HTML for read-only previews (QLabel, QTextBrowser)."""
    parts: list[str] = []
    for segment in segments:
        text = html.escape(segment.text).replace("\n", "<br/>")
        css = _css_for(segment.style)
        if segment.is_mention:
            parts.append(f'<span class="mention" style="{css}">{text}</span>')
        elif css:
            parts.append(f'<span style="{css}">{text}</span>')
        else:
            parts.append(text)
    return "".join(parts)
