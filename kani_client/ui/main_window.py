"""Main window for the Kani voice client."""

from __future__ import annotations

from PySide6.QtCore import Q_ARG, QMetaObject, Qt, Signal, Slot
from PySide6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..audio.factory import build_output_engine, build_recognition_engine
from ..config.settings import AppSettings
from ..config.store import load_settings
from ..runtime.controller import SessionOrchestrator
from ..services.schemas import Role
from ..state.app_state import ConnectionState


_STATUS_TEXT = {
    ConnectionState.DISCONNECTED: "Disconnected",
    ConnectionState.CONNECTING: "Connecting...",
    ConnectionState.CONNECTED: "Connected",
}


class _ChatBubble(QFrame):
    """One transcript entry. Text is always rendered as plain text."""

    def __init__(self, role: str, text: str, *, typing: bool = False) -> None:
        super().__init__()
        self.setObjectName("chatBubble")
        self.setProperty("bubbleRole", "typing" if typing else role)
        layout = QHBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 8)
        label = QLabel(text)
        label.setTextFormat(Qt.TextFormat.PlainText)
        label.setWordWrap(True)
        label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        if role == Role.USER.value:
            layout.addStretch(1)
            layout.addWidget(label, 4)
        else:
            layout.addWidget(label, 4)
            layout.addStretch(1)


class _HoldButton(QPushButton):
    """Push-to-talk button; leaving it while held counts as a release."""

    gesture_lost = Signal()

    def leaveEvent(self, event) -> None:  # type: ignore[override]
        if self.isDown():
            self.setDown(False)
        self.gesture_lost.emit()
        super().leaveEvent(event)


class KaniMainWindow(QMainWindow):
    """Desktop surface for one assistant session.

    Implements the presentation interface of the session orchestrator. Those
    calls arrive on the session loop thread and are queued onto the Qt thread.
    """

    def __init__(self, settings: AppSettings | None = None) -> None:
        super().__init__()
        self.setWindowTitle("Kani Assistant")
        self.setMinimumSize(720, 560)

        self.settings = settings or load_settings()
        self.controller = SessionOrchestrator(self.settings, self)
        self._capture_engine = build_recognition_engine(self.settings, self.controller.loop)
        self._output_engine = build_output_engine(self.settings)
        self.controller.attach_engines(capture=self._capture_engine, output=self._output_engine)
        self._typing_item: QListWidgetItem | None = None
        self._connection = ConnectionState.DISCONNECTED

        self._status_label = QLabel()
        self._status_label.setObjectName("connectionStatus")
        self._address_input = QLineEdit()
        self._address_input.setPlaceholderText("http://127.0.0.1:18789")
        self._address_input.returnPressed.connect(self._on_connect_clicked)
        self._connect_button = QPushButton("Connect")
        self._connect_button.clicked.connect(self._on_connect_clicked)

        self._chat_list = QListWidget()
        self._chat_list.setObjectName("chatList")
        self._chat_list.setSpacing(6)
        self._chat_list.setSelectionMode(QListWidget.SelectionMode.NoSelection)

        self._preview_label = QLabel("")
        self._preview_label.setObjectName("previewLabel")
        self._preview_label.setTextFormat(Qt.TextFormat.PlainText)
        self._preview_label.setWordWrap(True)

        self._mic_button = _HoldButton("Hold to talk")
        self._mic_button.setObjectName("micButton")
        self._mic_button.pressed.connect(self.controller.start_listening)
        self._mic_button.released.connect(self.controller.stop_listening)
        self._mic_button.gesture_lost.connect(self.controller.stop_listening)
        self._message_input = QLineEdit()
        self._message_input.setPlaceholderText("Type a message")
        self._message_input.returnPressed.connect(self._on_send_clicked)
        self._send_button = QPushButton("Send")
        self._send_button.clicked.connect(self._on_send_clicked)

        self._build_layout()
        self._apply_theme()
        self._apply_connection_state(ConnectionState.DISCONNECTED.value)

    # ------------------------------------------------------------------ #
    # Presentation interface (session loop thread)
    # ------------------------------------------------------------------ #
    def append_message(self, role: Role, text: str) -> None:
        QMetaObject.invokeMethod(
            self,
            "_apply_message",
            Qt.QueuedConnection,
            Q_ARG(str, role.value),
            Q_ARG(str, text),
        )

    def show_typing_placeholder(self) -> None:
        QMetaObject.invokeMethod(self, "_apply_show_typing", Qt.QueuedConnection)

    def remove_typing_placeholder(self) -> None:
        QMetaObject.invokeMethod(self, "_apply_remove_typing", Qt.QueuedConnection)

    def set_connection_state(self, state: ConnectionState) -> None:
        QMetaObject.invokeMethod(
            self,
            "_apply_connection_state",
            Qt.QueuedConnection,
            Q_ARG(str, state.value),
        )

    def set_recording(self, active: bool) -> None:
        QMetaObject.invokeMethod(self, "_apply_recording", Qt.QueuedConnection, Q_ARG(bool, active))

    def show_preview(self, text: str) -> None:
        QMetaObject.invokeMethod(self._preview_label, "setText", Qt.QueuedConnection, Q_ARG(str, text))

    # ------------------------------------------------------------------ #
    # Qt slots
    # ------------------------------------------------------------------ #
    @Slot(str, str)
    def _apply_message(self, role: str, text: str) -> None:
        self._insert_bubble(_ChatBubble(role, text))

    @Slot()
    def _apply_show_typing(self) -> None:
        if self._typing_item is not None:
            return
        self._typing_item = self._insert_bubble(_ChatBubble(Role.ASSISTANT.value, "...", typing=True))

    @Slot()
    def _apply_remove_typing(self) -> None:
        item, self._typing_item = self._typing_item, None
        if item is not None:
            self._chat_list.takeItem(self._chat_list.row(item))

    @Slot(str)
    def _apply_connection_state(self, value: str) -> None:
        state = ConnectionState(value)
        self._connection = state
        connected = state is ConnectionState.CONNECTED
        self._status_label.setText(_STATUS_TEXT[state])
        self._status_label.setProperty("connected", connected)
        self._repolish(self._status_label)
        self._address_input.setEnabled(state is ConnectionState.DISCONNECTED)
        self._connect_button.setEnabled(state is ConnectionState.DISCONNECTED)
        self._connect_button.setText("Connect" if state is ConnectionState.DISCONNECTED else _STATUS_TEXT[state])
        self._mic_button.setEnabled(connected and self.controller.capture.available)
        self._message_input.setEnabled(connected)
        self._send_button.setEnabled(connected)

    @Slot(bool)
    def _apply_recording(self, active: bool) -> None:
        self._mic_button.setProperty("recording", active)
        self._mic_button.setText("Listening..." if active else "Hold to talk")
        self._repolish(self._mic_button)
        if not active:
            self._preview_label.setText("")

    # ------------------------------------------------------------------ #
    # User input
    # ------------------------------------------------------------------ #
    def _on_connect_clicked(self) -> None:
        if self._connection is not ConnectionState.DISCONNECTED:
            return
        self.controller.request_connect(self._address_input.text())

    def _on_send_clicked(self) -> None:
        text = self._message_input.text().strip()
        if not text or self._connection is not ConnectionState.CONNECTED:
            return
        self._message_input.clear()
        self.controller.request_text(text)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _insert_bubble(self, bubble: _ChatBubble) -> QListWidgetItem:
        item = QListWidgetItem()
        item.setSizeHint(bubble.sizeHint())
        self._chat_list.addItem(item)
        self._chat_list.setItemWidget(item, bubble)
        self._chat_list.scrollToBottom()
        return item

    @staticmethod
    def _repolish(widget: QWidget) -> None:
        widget.style().unpolish(widget)
        widget.style().polish(widget)

    def _build_layout(self) -> None:
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(18, 18, 18, 18)
        layout.setSpacing(12)

        connect_row = QHBoxLayout()
        connect_row.addWidget(self._status_label)
        connect_row.addWidget(self._address_input, 1)
        connect_row.addWidget(self._connect_button)
        layout.addLayout(connect_row)

        layout.addWidget(self._chat_list, 1)
        layout.addWidget(self._preview_label)

        input_row = QHBoxLayout()
        input_row.addWidget(self._mic_button)
        input_row.addWidget(self._message_input, 1)
        input_row.addWidget(self._send_button)
        layout.addLayout(input_row)

        self.setCentralWidget(container)

    def _apply_theme(self) -> None:
        self.setStyleSheet(
            """
            QWidget {
                background-color: #10131f;
                color: #e9edff;
                font-size: 14px;
            }
            QLineEdit {
                background-color: #1b2033;
                border: 1px solid #2c3350;
                border-radius: 8px;
                padding: 6px 10px;
            }
            QPushButton {
                background-color: #2f6bff;
                border-radius: 8px;
                padding: 6px 14px;
            }
            QPushButton:disabled {
                background-color: #2a2f45;
                color: #7b819c;
            }
            QPushButton#micButton[recording="true"] {
                background-color: #e5484d;
            }
            QLabel#connectionStatus {
                color: #e5484d;
            }
            QLabel#connectionStatus[connected="true"] {
                color: #3fcf8e;
            }
            QLabel#previewLabel {
                color: #9aa3c7;
                font-style: italic;
            }
            QFrame#chatBubble[bubbleRole="user"] {
                background-color: #24305e;
                border-radius: 10px;
            }
            QFrame#chatBubble[bubbleRole="assistant"],
            QFrame#chatBubble[bubbleRole="typing"] {
                background-color: #1b2033;
                border-radius: 10px;
            }
            """
        )

    # ------------------------------------------------------------------ #
    # Qt event overrides
    # ------------------------------------------------------------------ #
    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.controller.shutdown()
        if self._capture_engine is not None:
            self._capture_engine.shutdown()
        if self._output_engine is not None:
            self._output_engine.cancel()
        super().closeEvent(event)
