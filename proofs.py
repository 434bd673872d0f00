"""
Borrow/return proof photos.

Storage itself is pluggable (``ProofUploader``); this module only turns an
inline payload into a reference string. A failed upload never fails the
borrow or return: the reference becomes a visible ``Upload Error: ...``
marker instead. Uploads happen before the ledger gate is taken.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional, Protocol

logger = logging.getLogger("app.proofs")

UPLOAD_ERROR_PREFIX = "Upload Error: "


class ProofUploader(Protocol):
    def upload(self, data: bytes, filename: str) -> str:
        """Store bytes, return a stable URL/reference."""
        ...


class ProofStorageNotConfigured(RuntimeError):
    pass


def decode_payload(payload: str) -> bytes:
    # accepts bare base64 or a data URL ("data:image/jpeg;base64,....")
    _, sep, tail = payload.partition(",")
    body = tail if sep else payload
    return base64.b64decode(body, validate=True)


def resolve_proof(
    uploader: Optional[ProofUploader],
    *,
    proof_ref: Optional[str],
    proof_data: Optional[str],
    filename: str,
) -> str:
    if proof_ref:
        return proof_ref
    if not proof_data:
        return ""
    try:
        if uploader is None:
            raise ProofStorageNotConfigured("proof storage is not configured")
        return uploader.upload(decode_payload(proof_data), filename)
    except (binascii.Error, ValueError, OSError, RuntimeError) as e:
        logger.warning("proof_upload_failed filename=%s error=%s", filename, e)
        return f"{UPLOAD_ERROR_PREFIX}{e}"
