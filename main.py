"""
Desktop entry point: opens the seam scarfing window.
Batch processing lives in scarf_cli.py.
"""

import logging
import sys
from PySide6.QtWidgets import QApplication
from gui.main_window import MainWindow


def main():
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    app = QApplication(sys.argv)
    window = MainWindow()
    window.show()
    return app.exec()


if __name__ == '__main__':
    sys.exit(main())
