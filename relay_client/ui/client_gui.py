#!/usr/bin/env python3
"""
Client GUI - PyQt6 chat window

A frame with an input line, the conversation, the list of active users and
a "Broadcast to Everyone" switch. The input line only becomes editable once
the server has accepted a display name. Selecting users in the list
addresses the next message to them only, unless broadcasting is ticked.
"""

import sys
import asyncio
import os
import threading
from typing import List, Optional

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QLineEdit,
    QTextEdit, QListWidget, QCheckBox, QInputDialog, QMessageBox, QAbstractItemView, QLabel
)
from PyQt6.QtCore import QThread, pyqtSignal

from relay_common.constants import MessageTypes, DEFAULT_HOST, DEFAULT_PORT, CONNECT_TIMEOUT
from relay_common.protocol_definitions import compose_outgoing, decode_line, encode_line, parse_server_line
from relay_client.utils.logger import logger


# ============================================================================
# CHAT WINDOW
# ============================================================================

class ChatWindow(QMainWindow):
    """Main chat window."""

    BASE_TITLE = "Chatter"

    def __init__(self, server_host: str = DEFAULT_HOST, server_port: int = DEFAULT_PORT,
                 username: Optional[str] = None):
        super().__init__()
        self.server_host = server_host
        self.server_port = server_port
        self.preset_username = username
        self.name: Optional[str] = None
        self.pending_name: Optional[str] = None
        self.name_attempts = 0
        self.network_thread: Optional[NetworkThread] = None
        self.setup_ui()

    def setup_ui(self):
        """Lay out the window."""
        self.setWindowTitle(self.BASE_TITLE)
        self.resize(640, 420)

        central = QWidget()
        layout = QVBoxLayout()
        layout.setContentsMargins(5, 5, 5, 5)

        self.input_field = QLineEdit()
        self.input_field.setPlaceholderText("Waiting for the server to accept a name...")
        self.input_field.setEnabled(False)
        self.input_field.returnPressed.connect(self.on_return_pressed)
        layout.addWidget(self.input_field)

        body = QHBoxLayout()

        users_column = QVBoxLayout()
        users_column.addWidget(QLabel("Active users"))
        self.users_list = QListWidget()
        self.users_list.setSelectionMode(QAbstractItemView.SelectionMode.MultiSelection)
        self.users_list.setMaximumWidth(180)
        users_column.addWidget(self.users_list)
        body.addLayout(users_column)

        self.message_area = QTextEdit()
        self.message_area.setReadOnly(True)
        body.addWidget(self.message_area, stretch=1)
        layout.addLayout(body, stretch=1)

        self.broadcast_checkbox = QCheckBox("Broadcast to Everyone")
        layout.addWidget(self.broadcast_checkbox)

        central.setLayout(layout)
        self.setCentralWidget(central)

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    def connect_to_server(self) -> bool:
        """Start the network thread."""
        self.network_thread = NetworkThread(self.server_host, self.server_port)
        self.network_thread.line_received.connect(self.handle_line)
        self.network_thread.connection_failed.connect(self.on_connection_failed)
        self.network_thread.disconnected.connect(self.on_disconnected)
        self.network_thread.start()
        return True

    def send_line(self, line: str):
        if self.network_thread is not None:
            self.network_thread.send_line(line)

    def on_connection_failed(self, reason: str):
        QMessageBox.critical(self, "Connection failed",
                             f"Could not reach {self.server_host}:{self.server_port}\n{reason}")
        self.close()

    def on_disconnected(self):
        self.input_field.setEnabled(False)
        self.input_field.setPlaceholderText("Disconnected from server")
        self.append_message("*** Disconnected from server ***")

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def handle_line(self, line: str):
        """React to one server line."""
        message = parse_server_line(line)

        if message.kind == MessageTypes.SUBMIT_NAME:
            name = self.ask_for_name()
            if name is None:
                self.close()
                return
            self.pending_name = name
            self.send_line(name)
        elif message.kind == MessageTypes.NAME_ACCEPTED:
            self.on_name_accepted()
        elif message.kind == MessageTypes.MESSAGE:
            self.append_message(message.payload)
        elif message.kind == MessageTypes.ACTIVE_USERS:
            self.set_roster(message.payload)

    def ask_for_name(self) -> Optional[str]:
        """Name for the next SUBMITNAME, or None if the user cancels."""
        self.name_attempts += 1
        if self.name_attempts == 1 and self.preset_username:
            return self.preset_username

        prompt = "Choose a screen name:"
        if self.name_attempts > 1:
            prompt = "That name is taken or invalid. Choose another screen name:"
        name, ok = QInputDialog.getText(self, "Screen name selection", prompt)
        if not ok:
            return None
        return name

    def on_name_accepted(self):
        self.name = self.pending_name
        self.setWindowTitle(f"{self.BASE_TITLE} ({self.name})")
        self.input_field.setEnabled(True)
        self.input_field.setPlaceholderText("Type a message and press Enter")
        self.input_field.setFocus()

    def append_message(self, text: str):
        self.message_area.append(text)

    def set_roster(self, names: List[str]):
        """Replace the active users list, keeping the selection of users still present."""
        selected = set(self.selected_users())
        self.users_list.clear()
        for name in names:
            self.users_list.addItem(name)
            if name in selected:
                self.users_list.item(self.users_list.count() - 1).setSelected(True)

    def selected_users(self) -> List[str]:
        """Selected names in roster order."""
        items = (self.users_list.item(i) for i in range(self.users_list.count()))
        return [item.text() for item in items if item.isSelected()]

    def compose_outgoing(self) -> str:
        """The line to send for the current input and selection."""
        return compose_outgoing(
            self.input_field.text(),
            self.selected_users(),
            self.broadcast_checkbox.isChecked()
        )

    def on_return_pressed(self):
        if not self.input_field.isEnabled():
            return
        self.send_line(self.compose_outgoing())
        self.input_field.clear()

    def closeEvent(self, event):
        if self.network_thread is not None:
            self.network_thread.stop()
            self.network_thread.wait(2000)
        super().closeEvent(event)


# ============================================================================
# NETWORK THREAD
# ============================================================================

class NetworkThread(QThread):
    """Thread for handling network communication."""

    line_received = pyqtSignal(str)
    connected = pyqtSignal()
    connection_failed = pyqtSignal(str)
    disconnected = pyqtSignal()

    def __init__(self, host: str, port: int, connect_timeout: float = CONNECT_TIMEOUT):
        super().__init__()
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.reader = None
        self.writer = None
        self.loop = None
        self.loop_ready = threading.Event()

    def run(self):
        """Run network loop."""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self.loop_ready.set()
        try:
            self.loop.run_until_complete(self._connect_and_listen())
        finally:
            self.loop.close()

    async def _connect_and_listen(self):
        """Connect to server and forward every line to the GUI thread."""
        try:
            logger.info(f"[NETWORK] Attempting to connect to {self.host}:{self.port}...")
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout
            )
        except asyncio.TimeoutError:
            self.connection_failed.emit(f"No answer within {self.connect_timeout} seconds")
            return
        except OSError as e:
            self.connection_failed.emit(str(e))
            return

        logger.log_connection(self.host, self.port, True)
        self.connected.emit()

        try:
            while True:
                data = await self.reader.readline()
                if not data:
                    logger.info("[NETWORK] Connection closed by server")
                    break
                self.line_received.emit(decode_line(data))
        except (ConnectionError, OSError) as e:
            logger.log_error("network", e)
        finally:
            self.disconnected.emit()
            await self._close_writer()

    async def _send_async(self, line: str):
        if not self.writer:
            return
        try:
            self.writer.write(encode_line(line))
            await self.writer.drain()
        except (ConnectionError, OSError) as e:
            logger.log_error("send", e)

    async def _close_writer(self):
        writer, self.writer = self.writer, None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    def send_line(self, line: str):
        """Send a line from the GUI thread."""
        if not self.loop_ready.wait(timeout=5.0):
            logger.warning("[NETWORK] Event loop not ready, line not sent")
            return
        asyncio.run_coroutine_threadsafe(self._send_async(line), self.loop)

    def stop(self):
        """Close the connection, which ends the read loop."""
        if self.loop is not None and self.loop.is_running():
            asyncio.run_coroutine_threadsafe(self._close_writer(), self.loop)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main(server_host: Optional[str] = None, server_port: Optional[int] = None, username: Optional[str] = None):
    """Main entry point."""
    app = QApplication(sys.argv)

    # Server address from arguments, then environment, then a prompt
    server_host = server_host or os.environ.get('SERVER_IP')
    server_port = server_port or int(os.environ.get('SERVER_PORT', str(DEFAULT_PORT)))
    if not server_host:
        server_host, ok = QInputDialog.getText(None, "Welcome to the Chatter",
                                               "Enter IP Address of the Server:", text=DEFAULT_HOST)
        if not ok or not server_host:
            return 1

    window = ChatWindow(server_host, server_port, username)
    window.show()
    window.connect_to_server()

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
