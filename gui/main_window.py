"""
The main window of the seam scarfing tool.
Input G-code on the left, the scarfed result in the middle, parameters and
statistics on the right, problems in the console underneath.
"""
from PySide6.QtWidgets import (QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
                               QPushButton, QFileDialog, QMessageBox, QTextEdit,
                               QSplitter, QLabel, QComboBox, QDoubleSpinBox, QFormLayout)
from PySide6.QtCore import Qt
from PySide6.QtGui import QFont
from .editor import Editor
from scarf_processor import ScarfProcessor
from config.scarf_config import ConfigManager, ScarfConfig
from utils.errors import GCodeProcessingError

GCODE_FILTER = "G-Code Files (*.gcode *.gco *.g);;All Files (*)"

# Config field -> (label, minimum, maximum, step)
PARAMETERS = {
    'layer_height': ("Layer height:", 0.0, 5.0, 0.05),
    'overlap': ("Overlap:", 0.01, 100.0, 0.5),
    'loop_tolerance': ("Loop tolerance:", 0.001, 10.0, 0.01),
    'taper_resolution': ("Taper resolution:", 0.01, 50.0, 0.1),
}


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Seam Scarf")
        self.resize(1600, 1000)

        self.processor = ScarfProcessor()
        self.current_config = ConfigManager.get_config("default")
        # Line ending of the loaded file, reused when saving
        self.newline = '\n'
        self.spin_boxes = {}

        self.setup_ui()
        self.apply_config(self.current_config)
        self.connect_signals()

    def setup_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.addLayout(self._build_toolbar())

        self.input_editor = Editor()
        self.output_editor = Editor(read_only=True)
        editors = QSplitter(Qt.Horizontal)
        editors.addWidget(self._titled("Input", self.input_editor))
        editors.addWidget(self._titled("Scarfed Output", self.output_editor))
        editors.addWidget(self._build_side_panel())
        editors.setSizes([650, 650, 300])

        self.error_console = QTextEdit()
        self.error_console.setReadOnly(True)

        vertical = QSplitter(Qt.Vertical)
        vertical.addWidget(editors)
        vertical.addWidget(self._titled("Errors and Warnings:", self.error_console))
        vertical.setSizes([800, 200])
        layout.addWidget(vertical)

    def _build_toolbar(self):
        self.load_button = QPushButton("Load G-Code File")
        self.process_button = QPushButton("Process")
        self.save_button = QPushButton("Save Result")
        self.save_button.setEnabled(False)
        self.preset_selector = QComboBox()
        self.preset_selector.addItems(ConfigManager.preset_names())
        self.status_label = QLabel("Ready")

        toolbar = QHBoxLayout()
        for button in (self.load_button, self.process_button, self.save_button):
            toolbar.addWidget(button)
        toolbar.addStretch()
        toolbar.addWidget(QLabel("Preset:"))
        toolbar.addWidget(self.preset_selector)
        toolbar.addWidget(self.status_label)
        return toolbar

    def _build_side_panel(self):
        form = QFormLayout()
        for field, (label, minimum, maximum, step) in PARAMETERS.items():
            spin = QDoubleSpinBox()
            spin.setDecimals(3)
            spin.setRange(minimum, maximum)
            spin.setSingleStep(step)
            self.spin_boxes[field] = spin
            form.addRow(label, spin)

        self.stats_label = QLabel("No G-code processed")
        self.stats_label.setFont(QFont("Courier", 9))
        self.stats_label.setStyleSheet("QLabel { background-color: #f0f0f0; padding: 5px; }")

        panel = QWidget()
        layout = QVBoxLayout(panel)
        layout.setContentsMargins(5, 5, 5, 5)
        layout.addLayout(form)
        layout.addWidget(self.stats_label)
        layout.addStretch()
        return panel

    @staticmethod
    def _titled(title, widget):
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(QLabel(title))
        layout.addWidget(widget)
        return container

    def connect_signals(self):
        self.load_button.clicked.connect(self.load_gcode_file)
        self.process_button.clicked.connect(self.process_gcode)
        self.save_button.clicked.connect(self.save_gcode_file)
        self.preset_selector.currentTextChanged.connect(self.change_preset)
        # Edits make the shown output stale
        self.input_editor.textChanged.connect(lambda: self.save_button.setEnabled(False))

    def apply_config(self, config: ScarfConfig):
        """Show the values of ``config`` in the parameter boxes."""
        for field, spin in self.spin_boxes.items():
            spin.setValue(getattr(config, field))

    def read_config(self) -> ScarfConfig:
        """Configuration built from the current parameter boxes."""
        values = {field: spin.value() for field, spin in self.spin_boxes.items()}
        return ConfigManager.override(self.current_config, **values)

    def change_preset(self, name):
        self.current_config = ConfigManager.get_config(name)
        self.apply_config(self.current_config)
        self.status_label.setText(f"Preset: {name}")

    def load_gcode_file(self):
        file_path, _ = QFileDialog.getOpenFileName(self, "Open G-Code File", "", GCODE_FILTER)
        if not file_path:
            return
        try:
            with open(file_path, 'r', newline='') as f:
                content = f.read()
        except OSError as e:
            QMessageBox.critical(self, "Open Failed", str(e))
            return
        self.newline = '\r\n' if '\r\n' in content else '\n'
        # The editor works with '\n' only
        self.input_editor.setPlainText(content.replace('\r\n', '\n'))
        self.output_editor.clear()
        self.status_label.setText(f"Loaded: {file_path}")

    def save_gcode_file(self):
        file_path, _ = QFileDialog.getSaveFileName(self, "Save G-Code File", "", GCODE_FILTER)
        if not file_path:
            return
        text = self.output_editor.toPlainText().replace('\n', self.newline)
        try:
            with open(file_path, 'w', newline='') as f:
                f.write(text)
        except OSError as e:
            QMessageBox.critical(self, "Save Failed", str(e))
            return
        self.status_label.setText(f"Saved: {file_path}")

    def process_gcode(self):
        """Scarf the input G-code and show the result."""
        gcode_text = self.input_editor.toPlainText()
        if not gcode_text.strip():
            return

        config = self.read_config()
        try:
            config.validate()
        except ValueError as e:
            QMessageBox.warning(self, "Invalid Parameters", str(e))
            return

        self.processor.config = config
        self.status_label.setText("Processing...")
        try:
            output = self.processor.process(gcode_text)
        except GCodeProcessingError as e:
            self.output_editor.clear()
            self.save_button.setEnabled(False)
            self.show_errors(e.errors)
            self.status_label.setText("Processing failed")
            return

        self.output_editor.setPlainText(output)
        self.save_button.setEnabled(True)
        self.show_errors(self.processor.get_all_errors())
        self.show_statistics()
        self.status_label.setText("Processing complete")

    def show_errors(self, errors):
        """List ``errors`` in the console and mark their lines in the input."""
        if not errors:
            self.error_console.setText("No errors found.")
        else:
            self.error_console.setText("\n".join(
                f"[{error.severity.value.upper()}] {error}" for error in errors))
        lines = [error.line_number for error in errors if error.line_number]
        self.input_editor.highlight_error_lines(lines)
        if lines:
            self.input_editor.goto_line(lines[0])

    def show_statistics(self):
        stats = self.processor.get_statistics()
        text = (
            f"Total Lines:     {stats['total_lines']}\n"
            f"Extrusion Runs:  {stats['extrusion_runs']}\n"
            f"Loops Found:     {stats['loops_found']}\n"
            f"Loops Scarfed:   {stats['loops_scarfed']}\n"
            f"Loops Unchanged: {stats['loops_skipped']}\n"
            f"Safety Floor Z:  {stats['safety_floor']:.3f}"
        )
        final = stats['final_state']
        if final and final['physical_position'] is not None:
            x, y, z = final['physical_position']
            text += f"\nEnd Position:    X{x:.2f} Y{y:.2f} Z{z:.2f}"
            text += f"\nModes:           {final['position_mode']} {final['extrusion_mode']}"
        self.stats_label.setText(text)
