# -*- coding: utf-8 -*-
import os
import time

from PySide6 import QtCore, QtGui, QtWidgets

from macrorec.global_screen import GlobalScreen
from macrorec.player_core import MacroPlayer
from macrorec.recorder_core import MacroRecorder
from macrorec.settings import Settings, load_settings, save_settings

SCRIPT_FILTER = "Macro Scripts (*.txt *.macro);;All Files (*)"

ICON_IDLE = "idle"
ICON_RECORD = "record"
ICON_PLAY = "play"


def _make_icon(kind, size=64):
    pixmap = QtGui.QPixmap(size, size)
    pixmap.fill(QtCore.Qt.transparent)
    painter = QtGui.QPainter(pixmap)
    painter.setRenderHint(QtGui.QPainter.Antialiasing)
    painter.setPen(QtCore.Qt.NoPen)
    margin = size // 8
    if kind == ICON_RECORD:
        painter.setBrush(QtGui.QColor("#d1242f"))
        painter.drawEllipse(margin, margin, size - 2 * margin, size - 2 * margin)
    elif kind == ICON_PLAY:
        painter.setBrush(QtGui.QColor("#1a7f37"))
        triangle = QtGui.QPolygon(
            [
                QtCore.QPoint(margin, margin),
                QtCore.QPoint(size - margin, size // 2),
                QtCore.QPoint(margin, size - margin),
            ]
        )
        painter.drawPolygon(triangle)
    else:
        painter.setBrush(QtGui.QColor("#2f81f7"))
        painter.drawRoundedRect(margin, margin, size - 2 * margin, size - 2 * margin, 8, 8)
    painter.end()
    return QtGui.QIcon(pixmap)


class UiSignals(QtCore.QObject):
    log_signal = QtCore.Signal(str)
    line_signal = QtCore.Signal(str)
    finished_signal = QtCore.Signal()


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, settings=None, config_path=None, autoplay=None):
        super().__init__()
        self.setWindowTitle("Macro Recorder")
        self.resize(720, 560)

        self.settings = settings or Settings()
        self.config_path = config_path
        self._icons = {kind: _make_icon(kind) for kind in (ICON_IDLE, ICON_RECORD, ICON_PLAY)}
        self.setWindowIcon(self._icons[ICON_IDLE])

        self._signals = UiSignals()
        self._signals.log_signal.connect(self._append_log)
        self._signals.line_signal.connect(self._append_script_line)
        self._signals.finished_signal.connect(self._on_finished)

        self.screen_hook = GlobalScreen.get_instance()
        self.screen_hook.log_callback = self._signals.log_signal.emit
        self.recorder = MacroRecorder(
            screen=self.screen_hook,
            move_sample_hz=self.settings.move_sample_hz,
            stop_key=self.settings.stop_key,
            log_callback=self._signals.log_signal.emit,
            line_callback=self._signals.line_signal.emit,
            error_callback=lambda exc: self._signals.finished_signal.emit(),
            stop_callback=self._signals.finished_signal.emit,
        )
        self.player = MacroPlayer(
            screen=self.screen_hook,
            log_callback=self._signals.log_signal.emit,
            finished_callback=lambda loops: self._signals.finished_signal.emit(),
            stop_key=self.settings.stop_key,
        )
        self._last_script = None

        central = QtWidgets.QWidget(self)
        central.setObjectName("root")
        self.setCentralWidget(central)
        main_layout = QtWidgets.QVBoxLayout(central)
        main_layout.setContentsMargins(18, 16, 18, 16)
        main_layout.setSpacing(12)

        # Status bar
        status_layout = QtWidgets.QHBoxLayout()
        status_title = QtWidgets.QLabel("Status")
        self.status_label = QtWidgets.QLabel("Ready")
        self.status_label.setObjectName("statusLabel")
        self.file_label = QtWidgets.QLabel("No script")
        status_layout.addWidget(status_title)
        status_layout.addWidget(self.status_label)
        status_layout.addWidget(self.file_label)
        status_layout.addStretch(1)
        main_layout.addLayout(status_layout)

        macro_group = QtWidgets.QGroupBox("Macro")
        macro_layout = QtWidgets.QVBoxLayout(macro_group)
        controls = QtWidgets.QHBoxLayout()
        self.record_btn = QtWidgets.QPushButton("Record... (Ctrl+R)")
        self.stop_btn = QtWidgets.QPushButton("Stop (Ctrl+E)")
        self.play_btn = QtWidgets.QPushButton("Play... (Ctrl+P)")
        self.replay_btn = QtWidgets.QPushButton("Replay last (Ctrl+Shift+P)")
        controls.addWidget(self.record_btn)
        controls.addWidget(self.stop_btn)
        controls.addWidget(self.play_btn)
        controls.addWidget(self.replay_btn)
        controls.addStretch(1)
        macro_layout.addLayout(controls)

        loop_layout = QtWidgets.QHBoxLayout()
        loop_label = QtWidgets.QLabel("Play count:")
        self.loop_spin = QtWidgets.QSpinBox()
        self.loop_spin.setRange(1, 9999)
        self.loop_spin.setValue(self.settings.loop_count)
        self.loop_infinite_chk = QtWidgets.QCheckBox("Loop forever")
        self.loop_infinite_chk.setChecked(self.settings.loop_infinite)
        loop_layout.addWidget(loop_label)
        loop_layout.addWidget(self.loop_spin)
        loop_layout.addWidget(self.loop_infinite_chk)
        loop_layout.addStretch(1)
        macro_layout.addLayout(loop_layout)

        help_text = QtWidgets.QLabel(
            f"The window minimizes while recording or playing. "
            f"Press {self.settings.stop_key.upper()} anywhere to stop."
        )
        help_text.setWordWrap(True)
        macro_layout.addWidget(help_text)
        main_layout.addWidget(macro_group)

        script_group = QtWidgets.QGroupBox("Script")
        script_layout = QtWidgets.QVBoxLayout(script_group)
        self.script_view = QtWidgets.QPlainTextEdit()
        self.script_view.setReadOnly(True)
        self.script_view.setMaximumBlockCount(20000)
        self.script_view.setFont(QtGui.QFontDatabase.systemFont(QtGui.QFontDatabase.FixedFont))
        script_layout.addWidget(self.script_view)
        main_layout.addWidget(script_group, 2)

        log_group = QtWidgets.QGroupBox("Log")
        log_layout = QtWidgets.QVBoxLayout(log_group)
        self.log_box = QtWidgets.QPlainTextEdit()
        self.log_box.setReadOnly(True)
        log_layout.addWidget(self.log_box)
        main_layout.addWidget(log_group, 1)

        self.record_btn.clicked.connect(self._start_recording)
        self.stop_btn.clicked.connect(self._stop_action)
        self.play_btn.clicked.connect(self._choose_and_play)
        self.replay_btn.clicked.connect(self._replay_last)

        self._bind_shortcuts()
        self._apply_theme()
        self._update_ui_state()

        self._ui_timer = QtCore.QTimer(self)
        self._ui_timer.setInterval(200)
        self._ui_timer.timeout.connect(self._update_ui_state)
        self._ui_timer.start()

        if autoplay:
            QtCore.QTimer.singleShot(0, lambda: self._play_file(autoplay))

    def _apply_theme(self):
        self.setStyleSheet(
            """
            QWidget#root {
                background: qlineargradient(x1:0, y1:0, x2:1, y2:1,
                    stop:0 #141b2f, stop:0.45 #1a2340, stop:1 #13203a);
                color: #f0f6ff;
            }
            QLabel {
                color: #dde6f3;
            }
            QLabel#statusLabel {
                padding: 8px;
            }
            QGroupBox::title {
                color: #f0f6ff;
            }
            """
        )

    def _bind_shortcuts(self):
        self.record_btn.setShortcut(QtGui.QKeySequence("Ctrl+R"))
        self.stop_btn.setShortcut(QtGui.QKeySequence("Ctrl+E"))
        self.play_btn.setShortcut(QtGui.QKeySequence("Ctrl+P"))
        self.replay_btn.setShortcut(QtGui.QKeySequence("Ctrl+Shift+P"))

    def _set_status(self, text, color):
        self.status_label.setText(text)
        self.status_label.setStyleSheet(
            "padding: 4px 10px;"
            "border-radius: 10px;"
            "background: rgba(31, 111, 235, 0.15);"
            "border: 1px solid rgba(88, 166, 255, 0.35);"
            f"color: {color};"
            "font-weight: 600;"
        )

    def _busy(self):
        return self.recorder.recording or self.player.playing

    def _update_ui_state(self):
        if self.recorder.recording:
            self._set_status("Recording", "#d1242f")
        elif self.player.playing:
            self._set_status("Playing", "#0969da")
        else:
            self._set_status("Ready", "#1a7f37")

        idle = not self._busy()
        self.stop_btn.setEnabled(not idle)
        self.record_btn.setEnabled(idle)
        self.play_btn.setEnabled(idle)
        self.replay_btn.setEnabled(idle and bool(self._last_script))
        self.loop_spin.setEnabled(idle)
        self.loop_infinite_chk.setEnabled(idle)

    def _append_log(self, message):
        ts = time.strftime("%H:%M:%S")
        self.log_box.appendPlainText(f"[{ts}] {message}")

    def _append_script_line(self, line):
        self.script_view.appendPlainText(line)

    def _set_script(self, path):
        self._last_script = path
        self.file_label.setText(os.path.basename(path))
        self.settings.last_dir = os.path.dirname(path)

    def _show_script(self, path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                self.script_view.setPlainText(f.read())
        except (OSError, UnicodeDecodeError) as exc:
            self._append_log(f"Cannot show {path}: {exc}")

    def _enter_background(self, icon_kind):
        self.setWindowIcon(self._icons[icon_kind])
        self.showMinimized()

    def _start_recording(self):
        if self._busy():
            return
        path, _ = QtWidgets.QFileDialog.getSaveFileName(
            self,
            "Record macro to",
            self.settings.last_dir,
            SCRIPT_FILTER,
        )
        if not path:
            return
        self.script_view.clear()
        if self.recorder.start_recording(path):
            self._set_script(path)
            self._enter_background(ICON_RECORD)
        self._update_ui_state()

    def _stop_action(self):
        if self.recorder.recording:
            if self.recorder.stop_recording():
                self._on_finished()
        elif self.player.playing:
            self.player.stop()
        self._update_ui_state()

    def _choose_and_play(self):
        if self._busy():
            return
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self,
            "Play macro",
            self.settings.last_dir,
            SCRIPT_FILTER,
        )
        if not path:
            return
        self._play_file(path)

    def _replay_last(self):
        if self._last_script:
            self._play_file(self._last_script)

    def _play_file(self, path):
        if self._busy():
            return
        self._set_script(path)
        self._show_script(path)
        started = self.player.play(
            path,
            loop_count=self.loop_spin.value(),
            loop_infinite=self.loop_infinite_chk.isChecked(),
        )
        if started:
            self._enter_background(ICON_PLAY)
        self._update_ui_state()

    def _on_finished(self):
        self.setWindowIcon(self._icons[ICON_IDLE])
        self.showNormal()
        self.activateWindow()
        self._update_ui_state()

    def _save_settings(self):
        self.settings.loop_count = self.loop_spin.value()
        self.settings.loop_infinite = self.loop_infinite_chk.isChecked()
        try:
            save_settings(self.settings, self.config_path)
        except OSError as exc:
            self._append_log(f"Cannot save settings: {exc}")

    def closeEvent(self, event):
        if self.recorder.recording:
            self.recorder.stop_recording()
        if self.player.playing:
            self.player.stop()
            self.player.wait(2.0)
        self._save_settings()
        GlobalScreen.reset_instance()
        super().closeEvent(event)


def run(settings=None, config_path=None, autoplay=None):
    app = QtWidgets.QApplication([])
    if settings is None:
        settings = load_settings(config_path)
    window = MainWindow(settings=settings, config_path=config_path, autoplay=autoplay)
    window.show()
    return app.exec()
