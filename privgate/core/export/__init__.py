from __future__ import annotations

from privgate.core.export.engine import ExportEngine, open_bundle
from privgate.core.export.models import DownloadResult, ExportBundle, ExportMetadata, ExportReceipt
from privgate.core.export.storage import ExportStorage

__all__ = [
    "DownloadResult",
    "ExportBundle",
    "ExportEngine",
    "ExportMetadata",
    "ExportReceipt",
    "ExportStorage",
    "open_bundle",
]
