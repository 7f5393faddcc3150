"""Qt suggestion popup and request-editor binding for the suggestion engine."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..completion.engine import PopupFactory, PopupKind, Suggestion, SuggestionEngine

try:  # pragma: no cover - optional Qt dependency
    from PySide6.QtCore import QEvent, QObject, Qt
    from PySide6.QtGui import QTextCursor
    from PySide6.QtWidgets import QListWidget, QListWidgetItem

    _QT_AVAILABLE = True
except Exception:  # pragma: no cover - headless fallback
    QEvent = None  # type: ignore[assignment]
    QObject = None  # type: ignore[assignment]
    Qt = None  # type: ignore[assignment]
    QTextCursor = None  # type: ignore[assignment]
    QListWidget = None  # type: ignore[assignment]
    QListWidgetItem = None  # type: ignore[assignment]
    _QT_AVAILABLE = False

__all__ = ["CompletionPopup", "RequestEditorBinding", "popup_factory_for"]

_LOGGER = logging.getLogger(__name__)


class CompletionPopup:
    """List of suggestions anchored at the trigger character in a request editor.

    The popup keeps its own suggestion list and highlighted row, so it can be
    driven without a live editor (``editor=None``) as well as on top of a
    ``QPlainTextEdit``.
    """

    def __init__(
        self,
        kind: PopupKind,
        *,
        editor: Any | None = None,
        enable_qt: bool | None = None,
    ) -> None:
        self.kind = kind
        self._editor = editor
        if enable_qt is None:
            self._qt_enabled = bool(_QT_AVAILABLE and editor is not None)
        else:
            self._qt_enabled = bool(enable_qt and _QT_AVAILABLE and editor is not None)
        self._suggestions: list[Suggestion] = []
        self._row = -1
        self._active = False
        self._anchor: int | None = None
        self._list_widget: Any | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def suggestions(self) -> list[Suggestion]:
        return list(self._suggestions)

    @property
    def list_widget(self) -> Any | None:
        return self._list_widget

    def highlighted(self) -> Suggestion | None:
        if 0 <= self._row < len(self._suggestions):
            return self._suggestions[self._row]
        return None

    def open(self, suggestions: Sequence[Suggestion]) -> None:
        self._suggestions = list(suggestions)
        self._row = 0 if self._suggestions else -1
        self._active = True
        self._anchor = self._cursor_position()
        if self._qt_enabled:
            self._render()

    def move_highlight(self, step: int) -> None:
        if not self._suggestions:
            return
        self._row = max(0, min(len(self._suggestions) - 1, self._row + step))
        if self._list_widget is not None:
            self._list_widget.setCurrentRow(self._row)

    def filter_to(self, typed: str) -> None:
        """Highlight the first suggestion whose key starts with ``typed``."""

        if not typed:
            return
        folded = typed.casefold()
        for row, suggestion in enumerate(self._suggestions):
            if suggestion.key.casefold().startswith(folded):
                self._row = row
                if self._list_widget is not None:
                    self._list_widget.setCurrentRow(row)
                return

    def typed_text(self) -> str:
        """Text entered in the editor since the trigger character."""

        if self._editor is None or self._anchor is None:
            return ""
        position = self._cursor_position()
        if position is None or position < self._anchor:
            return ""
        return self._editor.toPlainText()[self._anchor : position]

    def commit(self) -> Suggestion | None:
        suggestion = self.highlighted()
        if suggestion is not None and self._editor is not None and self._anchor is not None:
            self._replace_typed_text(suggestion.key)
        self.close()
        return suggestion

    def close(self) -> None:
        self._active = False
        self._anchor = None
        if self._list_widget is not None:
            self._list_widget.hide()
            self._list_widget.deleteLater()
            self._list_widget = None

    def _cursor_position(self) -> int | None:
        if self._editor is None:
            return None
        return self._editor.textCursor().position()

    def _replace_typed_text(self, key: str) -> None:
        editor = self._editor
        cursor = editor.textCursor()
        end = cursor.position()
        cursor.setPosition(self._anchor)
        cursor.setPosition(end, QTextCursor.MoveMode.KeepAnchor)
        cursor.insertText(key)
        editor.setTextCursor(cursor)

    def _render(self) -> None:
        if QListWidget is None:
            return
        if self._list_widget is None:
            widget = QListWidget(self._editor)
            widget.setObjectName(f"cs-{self.kind.value}-popup")
            widget.setWindowFlags(Qt.WindowType.ToolTip | Qt.WindowType.FramelessWindowHint)
            widget.setFocusPolicy(Qt.FocusPolicy.NoFocus)
            self._list_widget = widget
        widget = self._list_widget
        widget.clear()
        for suggestion in self._suggestions:
            item = QListWidgetItem(suggestion.key)
            if suggestion.description:
                item.setToolTip(suggestion.description)
            item.setData(Qt.ItemDataRole.UserRole, suggestion)
            widget.addItem(item)
        if widget.count():
            widget.setCurrentRow(self._row)
        rect = self._editor.cursorRect()
        widget.move(self._editor.viewport().mapToGlobal(rect.bottomLeft()))
        widget.show()


def popup_factory_for(editor: Any | None, *, enable_qt: bool | None = None) -> PopupFactory:
    """Return a factory that anchors every new popup in ``editor``."""

    def _factory(kind: PopupKind) -> CompletionPopup:
        return CompletionPopup(kind, editor=editor, enable_qt=enable_qt)

    return _factory


class RequestEditorBinding:
    """Routes typed characters from a ``QPlainTextEdit`` through the engine.

    Every printable character is offered to the engine before it is inserted
    (commit check) and again after insertion (trigger check). Arrow keys move
    the highlight, Return and Tab commit, Escape closes.
    """

    def __init__(self, editor: Any, engine: SuggestionEngine) -> None:
        self._editor = editor
        self._engine = engine
        self._popups: dict[PopupKind, CompletionPopup] = {}
        self._filter: Any | None = None
        if _QT_AVAILABLE and editor is not None:
            self._filter = _install_key_filter(editor, self)

    @property
    def editor(self) -> Any:
        return self._editor

    def feed_text(self, text: str) -> list[Suggestion]:
        """Insert ``text`` as though typed; return suggestions committed on the way."""

        committed = self._engine.handle_text_entering(text)
        cursor = self._editor.textCursor()
        cursor.insertText(text)
        self._editor.setTextCursor(cursor)
        popup = self._engine.handle_text_entered(text)
        if isinstance(popup, CompletionPopup):
            self._popups[popup.kind] = popup
        self._refresh_highlight()
        return committed

    def handle_key_press(self, event: Any) -> bool:
        """Return ``True`` when the key press was consumed."""

        key = event.key()
        active = self._active_popup()
        if active is not None:
            if key == Qt.Key.Key_Up:
                active.move_highlight(-1)
                return True
            if key == Qt.Key.Key_Down:
                active.move_highlight(1)
                return True
            if key in (Qt.Key.Key_Return, Qt.Key.Key_Enter, Qt.Key.Key_Tab):
                active.commit()
                return True
            if key == Qt.Key.Key_Escape:
                active.close()
                return True
        text = event.text()
        modifiers = event.modifiers()
        blocked = Qt.KeyboardModifier.ControlModifier | Qt.KeyboardModifier.AltModifier
        if len(text) != 1 or not text.isprintable() or modifiers & blocked:
            return False
        self.feed_text(text)
        return True

    def _active_popup(self) -> CompletionPopup | None:
        for popup in self._popups.values():
            if popup.is_active:
                return popup
        return None

    def _refresh_highlight(self) -> None:
        for popup in self._popups.values():
            if popup.is_active:
                popup.filter_to(popup.typed_text())


def _install_key_filter(editor: Any, binding: RequestEditorBinding) -> Any:
    class _KeyFilter(QObject):
        def eventFilter(self, watched: Any, event: Any) -> bool:  # noqa: N802 - Qt override
            if event.type() == QEvent.Type.KeyPress:
                return binding.handle_key_press(event)
            return False

    key_filter = _KeyFilter(editor)
    editor.installEventFilter(key_filter)
    _LOGGER.debug("Request editor key filter installed")
    return key_filter
