"""
Configuration for the POS Terminal.

Settings are read from config.ini (same file the logger reads its [Logging]
section from). Every option has a default so the terminal starts without a
config file. The backend URL can be overridden with the POS_BACKEND_URL
environment variable, which is convenient for pointing a terminal at a
staging server.

Example config.ini:
    [Backend]
    BaseUrl = https://pos-backend.example.com
    RequestTimeoutSeconds = 10

    [Terminal]
    EmployeeCode = EMP01
    StoreCode = 30
    PosNo = 90

    [Checkout]
    TaxRate = 0.10
    SyncMode = per_purchase
    TransactionPolicy = per_screen
    AutoAdd = true
    RequeueFailed = false
    BackgroundRequests = true

    [Camera]
    DeviceId = 0
    PollIntervalMs = 100
"""

import configparser
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Optional

from exceptions import ValidationError
from logger import get_logger

logger = get_logger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:8000"


class SyncMode(str, Enum):
    """When cart lines are written to the transaction service."""

    # Details are written when the purchase is committed (one call per unit)
    PER_PURCHASE = "per_purchase"
    # One detail is written each time a product is added to the cart
    PER_ADD = "per_add"


class TransactionPolicy(str, Enum):
    """How many purchases share one remote transaction."""

    # One transaction per screen activation, reused by every purchase
    PER_SCREEN = "per_screen"
    # A fresh transaction is opened after each completed purchase
    PER_PURCHASE = "per_purchase"


@dataclass(frozen=True)
class PosConfig:
    backend_url: str = DEFAULT_BACKEND_URL
    request_timeout: float = 10.0
    emp_code: str = "EMP01"
    store_code: str = "30"
    pos_no: str = "90"
    tax_rate: Decimal = Decimal("0.10")
    sync_mode: SyncMode = SyncMode.PER_PURCHASE
    transaction_policy: TransactionPolicy = TransactionPolicy.PER_SCREEN
    auto_add: bool = True
    requeue_failed: bool = False
    background_requests: bool = True
    camera_device_id: int = 0
    camera_poll_interval_ms: int = 100


def _parse_enum(enum_cls, raw: str, option: str):
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid value for {option}: '{raw}' (expected one of: {allowed})", value=raw)


def _parse_tax_rate(raw: str) -> Decimal:
    try:
        rate = Decimal(raw.strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid value for TaxRate: '{raw}'", value=raw)
    if rate < 0:
        raise ValidationError(f"TaxRate must not be negative: {raw}", value=raw)
    return rate


def load_config(path: Optional[Path] = None) -> PosConfig:
    """
    Load terminal settings from config.ini.

    Args:
        path: Location of the ini file. Defaults to ./config.ini.
              A missing file is not an error; defaults are used.

    Returns:
        PosConfig with values from the file, defaults for anything missing.

    Raises:
        ValidationError: If a value is present but cannot be parsed.
    """
    config_path = Path(path) if path is not None else Path('config.ini')
    parser = configparser.ConfigParser()

    if config_path.exists():
        parser.read(config_path, encoding='utf-8')
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.info(f"No configuration file at {config_path}, using defaults")

    defaults = PosConfig()

    try:
        backend_url = os.getenv("POS_BACKEND_URL") or parser.get(
            'Backend', 'BaseUrl', fallback=defaults.backend_url
        )
        timeout = parser.getfloat('Backend', 'RequestTimeoutSeconds', fallback=defaults.request_timeout)
        auto_add = parser.getboolean('Checkout', 'AutoAdd', fallback=defaults.auto_add)
        requeue_failed = parser.getboolean('Checkout', 'RequeueFailed', fallback=defaults.requeue_failed)
        background = parser.getboolean(
            'Checkout', 'BackgroundRequests', fallback=defaults.background_requests
        )
        device_id = parser.getint('Camera', 'DeviceId', fallback=defaults.camera_device_id)
        poll_ms = parser.getint('Camera', 'PollIntervalMs', fallback=defaults.camera_poll_interval_ms)
    except ValueError as e:
        raise ValidationError(f"Invalid configuration value: {e}")

    if timeout <= 0:
        raise ValidationError(f"RequestTimeoutSeconds must be positive: {timeout}", value=timeout)
    if poll_ms <= 0:
        raise ValidationError(f"PollIntervalMs must be positive: {poll_ms}", value=poll_ms)

    config = PosConfig(
        backend_url=backend_url.rstrip('/'),
        request_timeout=timeout,
        emp_code=parser.get('Terminal', 'EmployeeCode', fallback=defaults.emp_code),
        store_code=parser.get('Terminal', 'StoreCode', fallback=defaults.store_code),
        pos_no=parser.get('Terminal', 'PosNo', fallback=defaults.pos_no),
        tax_rate=_parse_tax_rate(parser.get('Checkout', 'TaxRate', fallback=str(defaults.tax_rate))),
        sync_mode=_parse_enum(
            SyncMode, parser.get('Checkout', 'SyncMode', fallback=defaults.sync_mode.value), 'SyncMode'
        ),
        transaction_policy=_parse_enum(
            TransactionPolicy,
            parser.get('Checkout', 'TransactionPolicy', fallback=defaults.transaction_policy.value),
            'TransactionPolicy',
        ),
        auto_add=auto_add,
        requeue_failed=requeue_failed,
        background_requests=background,
        camera_device_id=device_id,
        camera_poll_interval_ms=poll_ms,
    )

    logger.debug(
        f"Backend {config.backend_url}, sync mode {config.sync_mode.value}, "
        f"transaction policy {config.transaction_policy.value}"
    )
    return config
