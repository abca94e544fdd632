from __future__ import annotations

import argparse
import json
import logging
import os

from encrypted_uploads.errors import EncryptedUploadsError
from encrypted_uploads.models import UploadRequest
from encrypted_uploads.settings import Settings
from encrypted_uploads.uploads import UploadPipeline, attachment_url
from vault.ciphers import CipherConfig
from vault.crypto import decode_object_token, decrypt, encode_object_token, encrypt
from vault.salt import FileSaltStore
from vault.store import Vault


def load_context() -> tuple[Settings, CipherConfig, FileSaltStore]:
    settings = Settings.load()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings, settings.cipher_config(), FileSaltStore(settings.salt_path)

def read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()

def write_bytes(path: str, data: bytes):
    with open(path, "wb") as f:
        f.write(data)

def cmd_encrypt(args):
    _, config, salts = load_context()
    blob = encrypt(read_bytes(args.input), config, salts)
    write_bytes(args.output, blob.framed_bytes())
    print(f"✅ Encrypted {args.input} -> {args.output}")
    print(f"   iv: {len(blob.iv)} bytes | salt: {len(blob.salt)} bytes | ciphertext: {len(blob.ciphertext)} bytes")

def cmd_decrypt(args):
    _, config, salts = load_context()
    plaintext = decrypt(read_bytes(args.input), config, salts)
    write_bytes(args.output, plaintext)
    print(f"✅ Decrypted {args.input} -> {args.output} ({len(plaintext)} bytes)")

def cmd_encode_token(args):
    _, config, _ = load_context()
    print(encode_object_token(args.object_id, config))

def cmd_decode_token(args):
    _, config, _ = load_context()
    print(decode_object_token(args.token, config))

def cmd_upload(args):
    settings, config, salts = load_context()
    pipeline = UploadPipeline(config, salts, Vault(settings.vault_dir))
    outcome = pipeline.handle_upload(UploadRequest(
        tmp_path=args.file,
        original_filename=args.name or os.path.basename(args.file),
        encrypt=not args.no_encrypt,
        owner=args.owner,
    ))
    if not outcome.ok:
        raise SystemExit(f"❌ {outcome.error}")
    record = outcome.record
    print(json.dumps({
        "id": record.object_id,
        "title": record.title,
        "encrypted": record.encrypted,
        "url": attachment_url(record, settings.BASE_URL, settings.ENDPOINT),
    }, indent=2))

def cmd_link(args):
    settings, config, salts = load_context()
    pipeline = UploadPipeline(config, salts, Vault(settings.vault_dir))
    outcome = pipeline.link_remote(args.url, args.name, owner=args.owner, encrypted=not args.plain)
    if not outcome.ok:
        raise SystemExit(f"❌ {outcome.error}")
    record = outcome.record
    print(f"✅ Registered object {record.object_id}: {attachment_url(record, settings.BASE_URL, settings.ENDPOINT)}")

def cmd_list(args):
    settings, _, _ = load_context()
    for record in Vault(settings.vault_dir).records():
        flag = "🔒" if record.encrypted else "  "
        print(f"{flag} {record.object_id:>6}  {record.download_name}  owner={record.owner or '-'}  {record.size} bytes")

def cmd_serve(args):
    from api.server import create_app

    load_context()
    create_app().run(host=args.host, port=args.port)

def main() -> None:
    p = argparse.ArgumentParser(prog="encrypted-uploads")
    sub = p.add_subparsers(dest="cmd", required=True)

    # encrypt
    e = sub.add_parser("encrypt", help="Encrypt a file into a framed blob")
    e.add_argument("--in", dest="input", required=True)
    e.add_argument("--out", dest="output", required=True)
    e.set_defaults(func=cmd_encrypt)

    # decrypt
    d = sub.add_parser("decrypt", help="Decrypt a framed blob")
    d.add_argument("--in", dest="input", required=True)
    d.add_argument("--out", dest="output", required=True)
    d.set_defaults(func=cmd_decrypt)

    # encode-token
    et = sub.add_parser("encode-token", help="Print the object token for an id")
    et.add_argument("object_id", type=int)
    et.set_defaults(func=cmd_encode_token)

    # decode-token
    dt = sub.add_parser("decode-token", help="Print the object id behind a token")
    dt.add_argument("token")
    dt.set_defaults(func=cmd_decode_token)

    # upload
    u = sub.add_parser("upload", help="Store a file in the vault (encrypted by default)")
    u.add_argument("--file", required=True)
    u.add_argument("--name", help="Original filename (default: basename of --file)")
    u.add_argument("--owner", help="Owning principal id")
    u.add_argument("--no-encrypt", action="store_true")
    u.set_defaults(func=cmd_upload)

    # link
    lk = sub.add_parser("link", help="Register an object stored at a remote URL")
    lk.add_argument("--url", required=True)
    lk.add_argument("--name", required=True, help="Original filename")
    lk.add_argument("--owner", help="Owning principal id")
    lk.add_argument("--plain", action="store_true", help="Remote bytes are not encrypted")
    lk.set_defaults(func=cmd_link)

    # list
    ls = sub.add_parser("list", help="List stored objects")
    ls.set_defaults(func=cmd_list)

    # serve
    s = sub.add_parser("serve", help="Run the HTTP API")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8080)
    s.set_defaults(func=cmd_serve)

    args = p.parse_args()
    try:
        args.func(args)
    except EncryptedUploadsError as e:
        raise SystemExit(f"❌ {e.code}: {e.public_message}")

if __name__ == "__main__":
    main()
