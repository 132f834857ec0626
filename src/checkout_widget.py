from functools import partial

from PySide6.QtWidgets import (
    QWidget, QHBoxLayout, QVBoxLayout, QTableWidget, QTableWidgetItem,
    QLabel, QLineEdit, QHeaderView, QPushButton, QAbstractItemView, QSpinBox
)
from PySide6.QtGui import QFont
from PySide6.QtCore import Qt, Slot

from checkout_controller import CheckoutController
from models import MAX_QUANTITY, MIN_QUANTITY
from scan_controller import ScanState

NOTIFICATION_COLORS = {
    "info": "black",
    "success": "green",
    "warning": "orange",
    "error": "red",
}


class CheckoutWidget(QWidget):
    """
    The checkout screen.

    Shows the code entry, the scan toggle, the product that was read, the
    purchase list with its untaxed subtotal and the purchase button. All
    actions are forwarded to the CheckoutController; the widget only
    renders what the controller reports.

    Attributes:
        controller (CheckoutController): The screen's logic.
        code_input (QLineEdit): Manual product code entry. Enter submits.
        scan_button (QPushButton): Starts / stops camera scanning.
        name_display (QLineEdit): Read-only name of the product read.
        price_display (QLineEdit): Read-only unit price of the product read.
        add_button (QPushButton): Manual add, shown only without auto-add.
        table (QTableWidget): The purchase list.
        subtotal_label (QLabel): Untaxed subtotal of the purchase list.
        purchase_button (QPushButton): Commits the purchase.
        notification_label (QLabel): Last message from the controller.
    """

    def __init__(self, controller: CheckoutController, parent: QWidget = None):
        super().__init__(parent)
        self.controller = controller

        main_layout = QVBoxLayout(self)

        title = QLabel("POS Terminal")
        title_font = QFont(); title_font.setPointSize(20); title_font.setBold(True)
        title.setFont(title_font)
        main_layout.addWidget(title)

        self.scan_button = QPushButton("Scan barcode")
        self.scan_button.clicked.connect(self.controller.toggle_scan)
        self.camera_label = QLabel("")
        main_layout.addWidget(self.scan_button)
        main_layout.addWidget(self.camera_label)

        entry_layout = QHBoxLayout()
        self.code_input = QLineEdit()
        self.code_input.setPlaceholderText("Enter product code")
        self.code_input.returnPressed.connect(self._on_read_code)
        self.read_button = QPushButton("Read code")
        self.read_button.clicked.connect(self._on_read_code)
        entry_layout.addWidget(self.code_input)
        entry_layout.addWidget(self.read_button)
        main_layout.addLayout(entry_layout)

        self.name_display = QLineEdit()
        self.name_display.setReadOnly(True)
        self.name_display.setPlaceholderText("Name / unit price are shown here")
        self.price_display = QLineEdit()
        self.price_display.setReadOnly(True)
        main_layout.addWidget(self.name_display)
        main_layout.addWidget(self.price_display)

        self.add_button = QPushButton("Add")
        self.add_button.clicked.connect(self.controller.add_current_product)
        self.add_button.setVisible(not self.controller.lookup.auto_add)
        main_layout.addWidget(self.add_button)

        list_title = QLabel("Purchase list")
        main_layout.addWidget(list_title)

        self.table = QTableWidget()
        self.table.setColumnCount(5)
        self.table.setHorizontalHeaderLabels(["Name", "Quantity", "Unit price", "Line total", "Action"])
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeToContents)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.setEditTriggers(QTableWidget.NoEditTriggers)
        self.table.setSelectionMode(QAbstractItemView.NoSelection)
        main_layout.addWidget(self.table)

        self.subtotal_label = QLabel("Total (before tax): 0 yen")
        main_layout.addWidget(self.subtotal_label)

        self.purchase_button = QPushButton("Purchase")
        font = self.purchase_button.font(); font.setPointSize(14)
        self.purchase_button.setFont(font)
        self.purchase_button.clicked.connect(self.controller.purchase)
        self.purchase_button.setEnabled(False)
        main_layout.addWidget(self.purchase_button)

        self.notification_label = QLabel("")
        self.notification_label.setWordWrap(True)
        self.notification_label.setAlignment(Qt.AlignCenter)
        main_layout.addWidget(self.notification_label)

        self.controller.cart_updated.connect(self.refresh_cart)
        self.controller.product_changed.connect(self.display_product)
        self.controller.notification.connect(self.show_notification)
        self.controller.scan_state_changed.connect(self.update_scan_state)
        self.controller.transaction_changed.connect(self.update_transaction)

    @Slot()
    def _on_read_code(self):
        self.controller.submit_code(self.code_input.text())

    @Slot(object)
    def display_product(self, product):
        """Show the product that was read, or clear the display for None."""
        if product is None:
            self.name_display.clear()
            self.price_display.clear()
            return
        self.code_input.setText(product.code)
        self.name_display.setText(product.name)
        self.price_display.setText(f"{product.price} yen")

    @Slot()
    def refresh_cart(self):
        """Sync the purchase list with the controller's cart, reusing row widgets."""
        lines = self.controller.cart_lines()
        locked = self.controller.ledger.locked
        self.table.setRowCount(len(lines))

        for row, line in enumerate(lines):
            self.table.setItem(row, 0, QTableWidgetItem(line.name))

            spin = self.table.cellWidget(row, 1)
            if spin is None or spin.property("code") != line.code:
                spin = QSpinBox()
                spin.setProperty("code", line.code)
                spin.setRange(MIN_QUANTITY, MAX_QUANTITY)
                spin.setKeyboardTracking(False)
                spin.valueChanged.connect(partial(self._on_quantity_changed, line.code))
                self.table.setCellWidget(row, 1, spin)

                remove_button = QPushButton("Remove")
                remove_button.clicked.connect(lambda checked=False, code=line.code: self.controller.remove_line(code))
                self.table.setCellWidget(row, 4, remove_button)

            if spin.value() != line.quantity:
                spin.blockSignals(True)
                spin.setValue(line.quantity)
                spin.blockSignals(False)
            spin.setEnabled(not locked)
            self.table.cellWidget(row, 4).setEnabled(not locked)

            self.table.setItem(row, 2, QTableWidgetItem(f"{line.unit_price} yen"))
            self.table.setItem(row, 3, QTableWidgetItem(f"{line.line_total} yen"))

        self.subtotal_label.setText(f"Total (before tax): {self.controller.subtotal()} yen")

    def _on_quantity_changed(self, code: str, value: int):
        if not self.controller.change_quantity(code, value):
            self.refresh_cart()

    @Slot(str, str)
    def show_notification(self, text: str, level: str):
        """Display a controller message in the level's color."""
        self.notification_label.setText(text)
        self.notification_label.setStyleSheet(f"color: {NOTIFICATION_COLORS.get(level, 'black')};")

    @Slot(str)
    def update_scan_state(self, state: str):
        if state == ScanState.IDLE.value:
            self.scan_button.setText("Scan barcode")
            self.camera_label.setText("")
        else:
            self.scan_button.setText("Stop scanning")
            self.camera_label.setText("Camera starting..." if state == ScanState.STARTING.value else "Camera active...")

    @Slot(object)
    def update_transaction(self, transaction_id):
        self.purchase_button.setEnabled(transaction_id is not None)
