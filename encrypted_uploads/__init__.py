"""
Encrypted Uploads - encrypted-at-rest file store with capability-gated retrieval.

Files are encrypted under one shared key when uploaded and decrypted on the
way out, after the requester passes a capability check.
"""

__version__ = "0.1.0"
__schema__ = "encrypted-uploads/v1"
