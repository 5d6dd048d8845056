import argparse
import logging
import sys

from PySide6.QtWidgets import QApplication

from gui import MainWindow
from shared.app_settings import AppSettingsStore


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Telemetry log viewer and video exporter")
    parser.add_argument("path", nargs="?", help="telemetry log (.xlsx or .csv) to open on launch")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv[:1])
    app.setApplicationName("Telemetry Trace")
    app.setOrganizationName("TelemetryTrace")
    window = MainWindow(AppSettingsStore(), initial_path=args.path)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
