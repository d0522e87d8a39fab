"""Utilities."""

from .sanitizer import mask_sensitive_data, mask_headers, mask_url_credentials

__all__ = ["mask_sensitive_data", "mask_headers", "mask_url_credentials"]
