from __future__ import annotations

"""
Rule-based PII detection, masking and restoration.

Nothing in this package persists entities or mappings: both live for one
redact/restore cycle only.
"""

from privgate.core.pii.detector import PiiEntity, contains_pii, detect_pii
from privgate.core.pii.masker import MaskResult, PiiMapping, mask_pii, pii_summary, restore_output, validate_masked_text
from privgate.core.pii.patterns import PiiType
from privgate.core.pii.redactor import PiiRedactor, RedactionResult

__all__ = [
    "MaskResult",
    "PiiEntity",
    "PiiMapping",
    "PiiRedactor",
    "PiiType",
    "RedactionResult",
    "contains_pii",
    "detect_pii",
    "mask_pii",
    "pii_summary",
    "restore_output",
    "validate_masked_text",
]
