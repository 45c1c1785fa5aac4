"""
Credentials module: upload/download key generation, validation and derivation.
"""

from evstore.credentials.derivation import (
    add_download_tag,
    add_upload_tag,
    derive_download_key,
    generate_upload_key,
    normalize_download_key,
    strip_download_tag,
    strip_upload_tag,
    validate_upload_key,
)

__all__ = [
    "add_download_tag",
    "add_upload_tag",
    "derive_download_key",
    "generate_upload_key",
    "normalize_download_key",
    "strip_download_tag",
    "strip_upload_tag",
    "validate_upload_key",
]
