"""
G-code editor widget: Marlin syntax highlighting, a line number gutter and
marking of lines that carry errors.
"""
from PySide6.QtWidgets import QPlainTextEdit, QWidget, QTextEdit
from PySide6.QtGui import (QColor, QTextFormat, QPainter, QFont, QSyntaxHighlighter,
                           QTextCharFormat, QPalette)
from PySide6.QtCore import Qt, QRect, QSize

from core.command import CommandCode
from core.taper import LOOP_END_MARKER, LOOP_START_MARKER

BACKGROUND = '#2b2b2b'
FOREGROUND = '#f8f8f2'
CURRENT_LINE = '#44475a'
ERROR_LINE = '#660000'
GUTTER = '#383838'
GUTTER_TEXT = '#6c757d'
GUTTER_ERROR_TEXT = '#ff6b6b'


def _char_format(color, bold=False, italic=False):
    fmt = QTextCharFormat()
    fmt.setForeground(QColor(color))
    if bold:
        fmt.setFontWeight(QFont.Weight.Bold)
    fmt.setFontItalic(italic)
    return fmt


class MarlinHighlighter(QSyntaxHighlighter):
    """Colors the codes the scarfing interpreter understands; other codes are dimmed."""

    def __init__(self, document):
        super().__init__(document)
        self.code_formats = {
            'G0': _char_format('#51cf66', bold=True),
            'G1': _char_format('#51cf66', bold=True),
            'G2': _char_format('#ffd43b', bold=True),
            'G3': _char_format('#ffd43b', bold=True),
        }
        self.mode_format = _char_format('#74c0fc')
        self.passthrough_format = _char_format('#adb5bd')
        self.word_formats = {
            'X': _char_format('#ff9999'),
            'Y': _char_format('#99ff99'),
            'Z': _char_format('#9999ff'),
            'E': _char_format('#ffcc99'),
            'F': _char_format('#ffff99'),
        }
        self.comment_format = _char_format('#6c757d', italic=True)
        self.marker_format = _char_format('#ff8cc8', bold=True, italic=True)
        self.recognized = {code.value for code in CommandCode}

    def highlightBlock(self, text):
        code_part, separator, comment = text.partition(';')
        if separator:
            markers = (LOOP_START_MARKER, LOOP_END_MARKER)
            fmt = self.marker_format if comment.strip() in markers else self.comment_format
            self.setFormat(len(code_part), len(text) - len(code_part), fmt)

        position = 0
        for index, token in enumerate(code_part.split()):
            start = code_part.index(token, position)
            position = start + len(token)
            if index == 0:
                self.setFormat(start, len(token), self._code_format(token))
            else:
                fmt = self.word_formats.get(token[0].upper())
                if fmt is not None:
                    self.setFormat(start, len(token), fmt)

    def _code_format(self, code):
        if code in self.code_formats:
            return self.code_formats[code]
        if code in self.recognized:
            return self.mode_format
        return self.passthrough_format


class LineNumberGutter(QWidget):
    """Paints line numbers for an ``Editor``; error lines are drawn in red."""

    def __init__(self, editor):
        super().__init__(editor)
        self.editor = editor

    def width_hint(self):
        digits = len(str(max(1, self.editor.blockCount())))
        return 6 + self.editor.fontMetrics().horizontalAdvance('9') * digits

    def sizeHint(self):
        return QSize(self.width_hint(), 0)

    def paintEvent(self, event):
        editor = self.editor
        painter = QPainter(self)
        painter.fillRect(event.rect(), QColor(GUTTER))
        line_height = editor.fontMetrics().height()

        block = editor.firstVisibleBlock()
        top = editor.blockBoundingGeometry(block).translated(editor.contentOffset()).top()
        while block.isValid() and top <= event.rect().bottom():
            bottom = top + editor.blockBoundingRect(block).height()
            if block.isVisible() and bottom >= event.rect().top():
                line = block.blockNumber() + 1
                color = GUTTER_ERROR_TEXT if line in editor.error_lines else GUTTER_TEXT
                painter.setPen(QColor(color))
                painter.drawText(0, int(top), self.width() - 3, line_height,
                                 Qt.AlignRight, str(line))
            block = block.next()
            top = bottom


class Editor(QPlainTextEdit):
    """Plain text G-code editor in a dark theme."""

    def __init__(self, parent=None, read_only=False):
        super().__init__(parent)
        self.error_lines = set()
        self.gutter = LineNumberGutter(self)

        self._apply_theme()
        self.setLineWrapMode(QPlainTextEdit.NoWrap)
        self.setReadOnly(read_only)
        self.highlighter = MarlinHighlighter(self.document())

        self.blockCountChanged.connect(self._update_margins)
        self.updateRequest.connect(self._scroll_gutter)
        self.cursorPositionChanged.connect(self._refresh_selections)
        self._update_margins()

    def _apply_theme(self):
        palette = self.palette()
        palette.setColor(QPalette.Base, QColor(BACKGROUND))
        palette.setColor(QPalette.Text, QColor(FOREGROUND))
        palette.setColor(QPalette.Highlight, QColor(CURRENT_LINE))
        palette.setColor(QPalette.HighlightedText, QColor(FOREGROUND))
        self.setPalette(palette)

        font = QFont("Consolas", 11)
        if not font.exactMatch():
            font = QFont("Courier New", 11)
        font.setStyleHint(QFont.StyleHint.Monospace)
        font.setFixedPitch(True)
        self.setFont(font)

    def highlight_error_lines(self, lines):
        """Mark the given 1-based line numbers as erroneous."""
        self.error_lines = {line for line in lines or () if line and line > 0}
        self._refresh_selections()
        self.gutter.update()

    def clear_error_highlights(self):
        self.highlight_error_lines(())

    def goto_line(self, line_number):
        """Move the cursor to a 1-based line and center it."""
        block = self.document().findBlockByNumber(line_number - 1)
        if line_number > 0 and block.isValid():
            cursor = self.textCursor()
            cursor.setPosition(block.position())
            self.setTextCursor(cursor)
            self.centerCursor()

    def _full_width_selection(self, cursor, color):
        selection = QTextEdit.ExtraSelection()
        selection.format.setBackground(QColor(color))
        selection.format.setProperty(QTextFormat.FullWidthSelection, True)
        selection.cursor = cursor
        selection.cursor.clearSelection()
        return selection

    def _refresh_selections(self):
        selections = []
        cursor = self.textCursor()
        if not self.isReadOnly() and not cursor.hasSelection():
            selections.append(self._full_width_selection(cursor, CURRENT_LINE))

        for line in sorted(self.error_lines):
            block = self.document().findBlockByNumber(line - 1)
            if block.isValid():
                cursor = self.textCursor()
                cursor.setPosition(block.position())
                selections.append(self._full_width_selection(cursor, ERROR_LINE))

        self.setExtraSelections(selections)

    def _update_margins(self, *_):
        self.setViewportMargins(self.gutter.width_hint(), 0, 0, 0)

    def _scroll_gutter(self, rect, dy):
        if dy:
            self.gutter.scroll(0, dy)
        else:
            self.gutter.update(0, rect.y(), self.gutter.width(), rect.height())
        if rect.contains(self.viewport().rect()):
            self._update_margins()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        contents = self.contentsRect()
        self.gutter.setGeometry(QRect(contents.left(), contents.top(),
                                      self.gutter.width_hint(), contents.height()))
