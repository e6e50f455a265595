import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from PySide6.QtGui import QIcon
from PySide6.QtWidgets import QApplication, QMessageBox

from core.config import load_config
from core.errors import ValidationError
from ui.main_window import MainWindow

logger = logging.getLogger(__name__)


def _asset_path(*parts: str) -> Path:
    # PyInstaller onefile extracts bundled files under sys._MEIPASS.
    if getattr(sys, "frozen", False):
        return Path(getattr(sys, "_MEIPASS")) / Path(*parts)
    return Path(__file__).resolve().parent / Path(*parts)


def _configure_logging() -> None:
    level_name = os.getenv("SHAPEMASK_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message)s",
        datefmt="%H:%M:%S",
    )


def main() -> int:
    load_dotenv()
    _configure_logging()

    app = QApplication(sys.argv)
    app.setApplicationName("ShapeMask")
    app.setOrganizationName("ShapeMask")

    try:
        config = load_config(os.getenv("SHAPEMASK_SETTINGS"))
    except (ValidationError, OSError) as e:
        logger.error("Invalid settings: %s", e)
        QMessageBox.critical(None, "Invalid settings", str(e))
        return 2

    logo_path = _asset_path("assets", "Logo.png")
    if logo_path.exists():
        app.setWindowIcon(QIcon(str(logo_path)))

    w = MainWindow(config=config, logo_path=logo_path)
    w.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
