__all__ = ["MainWindow", "SessionSignals", "TelemetryChart"]

from .main_window import MainWindow
from .session_signals import SessionSignals
from .chart_widget import TelemetryChart
