"""
Station settings loaded from config.ini.

Example config.ini:

    [Backend]
    BaseUrl = https://erp.example.com/api
    TimeoutSeconds = 30
    MaxRetries = 5
    RetryDelaySeconds = 1.0

    [Incidents]
    AuthorizationSecret = change-me

    [Scanner]
    HighlightSeconds = 3

    [Labels]
    Dpi = 203
    WidthMM = 65
    HeightMM = 35
    FontSize = 32

    [Drafts]
    DraftDir = C:\\ScanReconciler\\drafts

    [Containers]
    CAJA-CH = small box
    CAJA-GDE = large box

Every value has a fallback except BaseUrl, which is only required once a
BackendClient is built.
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from logger import get_logger

logger = get_logger(__name__)


@dataclass
class ReconcilerSettings:
    """
    Flat view of config.ini.

    Attributes:
        base_url: Backend root URL, without trailing slash (None if unset)
        timeout_seconds: Per-request HTTP timeout
        max_retries: Attempts per backend call
        retry_delay_seconds: Pause between attempts
        authorization_secret: Secret for invoiced "extra" incidents
        highlight_seconds: How long the last scanned line stays highlighted
        label_dpi / label_width_mm / label_height_mm / label_font_size: Label geometry
        draft_dir: Directory for crash-recovery drafts
        container_catalog: Container barcode -> container type, from [Containers]
    """
    base_url: Optional[str] = None
    timeout_seconds: int = 30
    max_retries: int = 5
    retry_delay_seconds: float = 1.0
    authorization_secret: str = ''
    highlight_seconds: float = 3.0
    label_dpi: int = 203
    label_width_mm: int = 65
    label_height_mm: int = 35
    label_font_size: int = 32
    draft_dir: Path = Path(os.path.expanduser("~")) / ".scan_reconciler" / "drafts"
    container_catalog: Dict[str, str] = field(default_factory=dict)


def _load_config(config_path: str) -> configparser.ConfigParser:
    """Load configuration from config.ini."""
    config = configparser.ConfigParser()

    if not Path(config_path).exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return config

    config.read(config_path, encoding='utf-8')
    logger.info(f"Configuration loaded from {config_path}")
    return config


def load_settings(config_path: str = "config.ini") -> ReconcilerSettings:
    """
    Read config.ini into a ReconcilerSettings instance.

    Args:
        config_path: Path to config.ini

    Returns:
        ReconcilerSettings with fallbacks applied for anything missing
    """
    config = _load_config(config_path)
    defaults = ReconcilerSettings()

    base_url = config.get('Backend', 'BaseUrl', fallback='').strip().rstrip('/')

    draft_dir = config.get('Drafts', 'DraftDir', fallback='')

    return ReconcilerSettings(
        base_url=base_url or None,
        timeout_seconds=config.getint('Backend', 'TimeoutSeconds', fallback=defaults.timeout_seconds),
        max_retries=config.getint('Backend', 'MaxRetries', fallback=defaults.max_retries),
        retry_delay_seconds=config.getfloat('Backend', 'RetryDelaySeconds', fallback=defaults.retry_delay_seconds),
        authorization_secret=config.get('Incidents', 'AuthorizationSecret', fallback=''),
        highlight_seconds=config.getfloat('Scanner', 'HighlightSeconds', fallback=defaults.highlight_seconds),
        label_dpi=config.getint('Labels', 'Dpi', fallback=defaults.label_dpi),
        label_width_mm=config.getint('Labels', 'WidthMM', fallback=defaults.label_width_mm),
        label_height_mm=config.getint('Labels', 'HeightMM', fallback=defaults.label_height_mm),
        label_font_size=config.getint('Labels', 'FontSize', fallback=defaults.label_font_size),
        draft_dir=Path(draft_dir) if draft_dir else defaults.draft_dir,
        # configparser lower-cases option names; ContainerTracker compares canonical codes
        container_catalog=dict(config.items('Containers')) if config.has_section('Containers') else {},
    )
