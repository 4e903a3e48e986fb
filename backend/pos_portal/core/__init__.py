"""
Core: receipt data structures and the normalize / group steps of the submission pipeline.

Submission orchestration lives in core.submission_processor, reconciliation in
core.reconciliation (import them directly; they depend on the service layer).
"""
from .structures import (
    DEFAULT_SALE_CHANNEL, ReceiptType, InputSource,
    CanonicalReceipt, WireReceipt, SubmissionUnit,
)
from .normalizer import normalize, normalize_batch
from .shift_grouper import group

__all__ = [
    "DEFAULT_SALE_CHANNEL", "ReceiptType", "InputSource",
    "CanonicalReceipt", "WireReceipt", "SubmissionUnit",
    "normalize", "normalize_batch", "group",
]
