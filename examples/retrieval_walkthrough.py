"""
Encrypted upload and gated retrieval, end to end, without an HTTP server.

Run:
    python examples/retrieval_walkthrough.py
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from encrypted_uploads.gateway import RetrievalGateway
from encrypted_uploads.models import Principal, UploadRequest
from encrypted_uploads.policy import CapabilityPolicy
from encrypted_uploads.uploads import UploadPipeline, attachment_url
from vault.ciphers import CipherConfig
from vault.salt import FileSaltStore
from vault.store import Vault


def main() -> None:
    config = CipherConfig(
        method="AES128",
        key=b"example-cipher-key-0123456789abc",
        token_secret=b"example-token-secret",
    ).validate()

    with tempfile.TemporaryDirectory() as state:
        salts = FileSaltStore(str(Path(state) / "iv-salt"))
        vault = Vault(str(Path(state) / "vault"))

        src = Path(state) / "upload.tmp"
        src.write_bytes(b"hello world")

        pipeline = UploadPipeline(config, salts, vault)
        outcome = pipeline.handle_upload(UploadRequest(
            tmp_path=str(src), original_filename="greeting.txt", encrypt=True, owner="alice",
        ))
        record = outcome.record
        url = attachment_url(record, "https://site.example", "decrypt")
        print(f"Stored object {record.object_id}: {url}")

        gateway = RetrievalGateway(config, salts, vault, CapabilityPolicy(vault))
        for who in (Principal(id="alice"), Principal(id="mallory")):
            result = gateway.handle_retrieval(record.token, who)
            print(f"{who.id:>8}: {result.state.value:<7} {result.body or result.public_message}")


if __name__ == "__main__":
    main()
