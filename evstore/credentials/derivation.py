"""
Asymmetric Credential Derivation

A writer holds a secret 256-bit upload credential. The matching download
credential is the SHA-256 digest of the upload credential's canonical
text form, so readers can be handed the download credential without
gaining write access.

Canonical forms:
- upload:   64 lowercase hex chars, optionally presented as ``u_<hex>``
- download: 64 lowercase hex chars, optionally presented as ``d_<hex>``

Tags are a presentation concern only; every function here strips them
before validating and the service never stores tagged keys.

Complexity: O(1) per call (fixed 64 character inputs).
"""

from __future__ import annotations

import binascii
import hashlib
import logging
import secrets

from evstore.core import constants as C
from evstore.core.errors import CredentialError, EntropySourceError
from evstore.core.types import Err, Ok, Result

logger = logging.getLogger(__name__)


# =============================================================================
# TAG HELPERS
# =============================================================================
def strip_upload_tag(key: str) -> str:
    """Remove an optional ``u_`` prefix."""
    return key[len(C.UPLOAD_TAG):] if key.startswith(C.UPLOAD_TAG) else key


def strip_download_tag(key: str) -> str:
    """Remove an optional ``d_`` prefix."""
    return key[len(C.DOWNLOAD_TAG):] if key.startswith(C.DOWNLOAD_TAG) else key


def add_upload_tag(key: str) -> str:
    return C.UPLOAD_TAG + key


def add_download_tag(key: str) -> str:
    return C.DOWNLOAD_TAG + key


# =============================================================================
# VALIDATION AND DERIVATION
# =============================================================================
def _decode_hex(text: str) -> bytes | None:
    try:
        return binascii.unhexlify(text)
    except (binascii.Error, ValueError):
        return None


def validate_upload_key(upload_key: str) -> Result[None, CredentialError]:
    """
    Check that ``upload_key`` is a 256 bit hex value.

    The ``u_`` tag is optional and case is ignored.
    """
    canonical = strip_upload_tag(upload_key).lower()
    decoded = _decode_hex(canonical)
    if decoded is None:
        return Err(CredentialError.invalid_format("not a hex string"))
    if len(decoded) != C.CREDENTIAL_BYTES:
        return Err(CredentialError.invalid_format(f"decodes to {len(decoded)} bytes"))
    return Ok(None)


def derive_download_key(upload_key: str) -> Result[str, CredentialError]:
    """
    Derive the download credential for ``upload_key``.

    Strips the optional tag, lowercases, requires exactly 32 bytes of hex,
    then returns the hex SHA-256 digest of the normalized text. Upper- and
    lowercase spellings of the same key derive the same download key.
    """
    canonical = strip_upload_tag(upload_key).lower()
    decoded = _decode_hex(canonical)
    if decoded is None or len(decoded) != C.CREDENTIAL_BYTES:
        return Err(CredentialError.invalid_length(len(decoded) if decoded is not None else -1))
    try:
        digest = hashlib.sha256(canonical.encode("ascii")).hexdigest()
    except (UnicodeEncodeError, ValueError) as e:
        logger.error("Download key derivation failed: %s", e)
        return Err(CredentialError.derivation_failed(cause=e))
    return Ok(digest)


def normalize_download_key(download_key: str) -> Result[str, CredentialError]:
    """
    Canonicalize a presented download credential.

    Any 64 hex character string is accepted whether or not a record
    exists for it.
    """
    canonical = strip_download_tag(download_key).lower()
    if len(canonical) != C.CREDENTIAL_HEX_LENGTH:
        return Err(CredentialError.invalid_download_key(f"length {len(canonical)}"))
    if _decode_hex(canonical) is None:
        return Err(CredentialError.invalid_download_key("not a hex string"))
    return Ok(canonical)


# =============================================================================
# GENERATION
# =============================================================================
def generate_upload_key() -> str:
    """
    Produce a fresh upload credential from the OS CSPRNG.

    Raises:
        EntropySourceError: The random source failed. Callers must not
            catch this to substitute another generator.
    """
    try:
        raw = secrets.token_bytes(C.CREDENTIAL_BYTES)
    except (OSError, NotImplementedError) as e:
        logger.critical("Secure random source unavailable: %s", e)
        raise EntropySourceError.unavailable(cause=e) from e
    return raw.hex()
