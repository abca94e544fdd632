"""
Encrypted Uploads HTTP API

Flask app for:
- Decrypting retrieval endpoint (GET /<endpoint>/<token>)
- Uploads with optional encryption
- Health and metrics

Run:
    flask --app api.server run --port 8080

Or with gunicorn (production):
    gunicorn -w 4 -b 0.0.0.0:8080 'api.server:create_app()'
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Callable, Optional

from flask import Flask, Request, Response, jsonify, request

from encrypted_uploads import __version__
from encrypted_uploads.gateway import RetrievalGateway, RetrievalResult, RetrievalState
from encrypted_uploads.metrics import Metrics
from encrypted_uploads.models import Principal, UploadRequest
from encrypted_uploads.policy import CanView, CapabilityPolicy, ShouldEncrypt, allow_all
from encrypted_uploads.settings import Settings
from encrypted_uploads.uploads import UploadPipeline, attachment_url
from vault.remote import HttpFetcher, RemoteObjectStore
from vault.salt import FileSaltStore, SaltStore
from vault.store import Vault

logger = logging.getLogger(__name__)

PrincipalResolver = Callable[[Request], Optional[Principal]]

TRUE_VALUES = ("1", "true", "on", "yes")

# HTTP status per failure code; bodies are the fixed public messages
STATUS_BY_REASON = {
    "PERMISSION_DENIED": 403,
    "INVALID_TOKEN": 400,
    "FETCH_FAILED": 502,
    "DECRYPTION_FAILED": 500,
}


def principal_from_headers(req: Request) -> Optional[Principal]:
    """Principal asserted by an authenticating reverse proxy."""
    user = req.headers.get("X-Remote-User", "").strip()
    if not user:
        return None
    caps = req.headers.get("X-Remote-Capabilities", "")
    return Principal(id=user, capabilities={c.strip() for c in caps.split(",") if c.strip()})


def retrieval_response(result: RetrievalResult) -> Response:
    if result.state is RetrievalState.SERVED:
        resp = Response(result.body, status=200)
        resp.headers["Content-Type"] = f"{result.content_type}; charset=utf-8"
        resp.headers["Content-Disposition"] = f"filename={result.filename}"
        return resp
    status = STATUS_BY_REASON.get(result.reason, 500)
    return Response(result.public_message, status=status, mimetype="text/plain")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[Vault] = None,
    salts: Optional[SaltStore] = None,
    can_view: Optional[CanView] = None,
    should_encrypt: ShouldEncrypt = allow_all,
    resolve_principal: PrincipalResolver = principal_from_headers,
    metrics: Optional[Metrics] = None,
) -> Flask:
    settings = settings or Settings.load()
    config = settings.cipher_config()
    store = store or Vault(settings.vault_dir)
    salts = salts or FileSaltStore(settings.salt_path)
    metrics = metrics or Metrics()
    can_view = can_view or CapabilityPolicy(store, settings.VIEW_CAPABILITY)

    fetcher = HttpFetcher(
        timeout=settings.FETCH_TIMEOUT,
        retries=settings.FETCH_RETRIES,
        verify_tls=settings.FETCH_VERIFY_TLS,
        metrics=metrics,
    )
    objects = RemoteObjectStore(store, fetcher)

    gateway = RetrievalGateway(config, salts, objects, can_view, metrics=metrics)
    pipeline = UploadPipeline(config, salts, store, should_encrypt=should_encrypt)

    app = Flask(__name__)
    # Tokens are base64 and may contain "//"
    app.url_map.merge_slashes = False
    app.config["ENCRYPTED_UPLOADS"] = settings

    @app.route("/api/health")
    def health_check():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        })

    @app.route("/api/metrics")
    def metrics_snapshot():
        return jsonify(metrics.snapshot())

    @app.route(f"/{settings.ENDPOINT}/<path:token>")
    def serve_decrypted_file(token: str):
        result = gateway.handle_retrieval(token, resolve_principal(request))
        return retrieval_response(result)

    @app.route("/api/uploads", methods=["POST"])
    def upload_file():
        """
        Store an uploaded file.

        Form fields:
            - file: the upload
            - encrypted: boolean flag, encrypt before storing
        """
        principal = resolve_principal(request)
        if principal is None:
            return jsonify({"error": "Authentication required"}), 401

        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return jsonify({"error": "Missing file"}), 400
        wants_encryption = request.form.get("encrypted", "").strip().lower() in TRUE_VALUES

        fd, tmp_path = tempfile.mkstemp(prefix="upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                upload.save(f)
            outcome = pipeline.handle_upload(UploadRequest(
                tmp_path=tmp_path,
                original_filename=upload.filename,
                encrypt=wants_encryption,
                owner=principal.id,
            ))
        finally:
            os.unlink(tmp_path)

        if not outcome.ok:
            metrics.inc("uploads_rejected_total")
            logger.info(f"Upload rejected for {principal.id}: {outcome.error}")
            return jsonify({"error": outcome.error}), 400

        metrics.inc("uploads_stored_total")
        record = outcome.record
        return jsonify({
            "id": record.object_id,
            "title": record.title,
            "encrypted": record.encrypted,
            "url": attachment_url(record, settings.BASE_URL, settings.ENDPOINT),
        }), 201

    return app


if __name__ == "__main__":
    # Development server
    create_app().run(host="0.0.0.0", port=8080, debug=True)
