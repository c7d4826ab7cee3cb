import os

from PySide6 import QtCore

# Headless Qt, and keep the test run out of the real application data folder
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
QtCore.QStandardPaths.setTestModeEnabled(True)
