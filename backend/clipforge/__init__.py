"""Clipforge: asynchronous image/text-to-video job orchestration."""
