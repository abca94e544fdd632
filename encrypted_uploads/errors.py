"""
Typed failures for the codec, the object stores and the retrieval gateway.

Every error carries a stable ``code`` and a fixed ``public_message``. The
transport layer only ever shows ``public_message`` to clients; the exception
text stays in the logs.
"""

from __future__ import annotations


class EncryptedUploadsError(Exception):
    """Base class for all errors raised by this package."""

    code = "ERROR"
    public_message = "Something went wrong."


class InvalidCipherKey(EncryptedUploadsError):
    """Configured key is shorter than the cipher method requires."""

    code = "INVALID_CIPHER_KEY"
    public_message = "Encryption is not configured correctly."


# --- Codec ---

class CodecError(EncryptedUploadsError):
    code = "CODEC_ERROR"
    public_message = "Could not encrypt the file."


class UnsupportedCipherMethod(CodecError):
    code = "UNSUPPORTED_CIPHER_METHOD"
    public_message = "Unsupported cipher method specified."


class RandomnessUnavailable(CodecError):
    code = "RANDOMNESS_UNAVAILABLE"


class EncodeFailed(CodecError):
    code = "ENCODE_FAILED"


class InvalidToken(CodecError):
    code = "INVALID_TOKEN"
    public_message = "Invalid file link."


class DecryptionFailed(CodecError):
    code = "DECRYPTION_FAILED"
    public_message = "Could not retrieve the file."


# --- Gateway / stores ---

class GatewayError(EncryptedUploadsError):
    code = "GATEWAY_ERROR"
    public_message = "Could not retrieve the file."


class FetchFailed(GatewayError):
    code = "FETCH_FAILED"


class PermissionDenied(GatewayError):
    code = "PERMISSION_DENIED"
    public_message = "You do not have permission to view this file."


class ObjectNotFound(GatewayError):
    # Collapsed into PermissionDenied before reaching a client
    code = "OBJECT_NOT_FOUND"
    public_message = PermissionDenied.public_message
