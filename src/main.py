import sys

from PySide6.QtWidgets import QApplication, QMainWindow, QMessageBox

from checkout_controller import CheckoutController
from checkout_widget import CheckoutWidget
from exceptions import ValidationError
from logger import get_logger
from pos_config import PosConfig, load_config

logger = get_logger(__name__)


class MainWindow(QMainWindow):
    """
    Application window hosting the checkout screen.

    The controller is activated when the window is built (one transaction
    per window) and torn down when the window closes, which releases the
    camera and closes the HTTP session.
    """

    def __init__(self, config: PosConfig, controller: CheckoutController = None):
        super().__init__()
        self.setWindowTitle("POS Terminal")
        self.resize(640, 800)

        self.controller = controller or CheckoutController(config)
        self.checkout_widget = CheckoutWidget(self.controller, self)
        self.setCentralWidget(self.checkout_widget)

        self.controller.purchase_completed.connect(self._on_purchase_completed)

        logger.info("Initializing MainWindow")
        self.controller.activate()

    def _on_purchase_completed(self, result):
        QMessageBox.information(self, "Purchase", result.display_message())

    def closeEvent(self, event):
        self.controller.teardown()
        super().closeEvent(event)


def main() -> int:
    app = QApplication(sys.argv)

    try:
        config = load_config()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        QMessageBox.critical(None, "Configuration Error", f"config.ini is invalid:\n\n{e}")
        return 1

    window = MainWindow(config)
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
