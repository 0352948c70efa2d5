"""Change detection."""

from .engine import ChangeDetectionEngine, ChangeDetectionResult, content_hash, select_method


__all__ = ["ChangeDetectionEngine", "ChangeDetectionResult", "content_hash", "select_method"]
