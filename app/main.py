from __future__ import annotations

import os
from dataclasses import asdict
from typing import Any

from flask import Flask, Response, jsonify, request, send_file

from app.eproc import db
from app.eproc.healthcheck import run_health_checks
from app.eproc.logging_utils import _scraper_event
from app.eproc.models import RunRecord
from app.eproc.storage import get_store
from app.eproc.utils import ensure_dirs

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Storage paths and schema must exist for WSGI entrypoints too.
ensure_dirs()
db.initialize_schema()


def _run_to_dict(run: RunRecord) -> dict[str, Any]:
    payload = asdict(run)
    payload["status"] = run.status.value
    return payload


@app.get("/api/health")
def api_health() -> Response:
    result = run_health_checks(entrypoint="api")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.get("/api/runs")
def api_runs_list() -> Response:
    """Return recent runs as a JSON array, newest first."""

    raw_limit = request.args.get("limit", type=int)
    if raw_limit is None:
        limit = 20
    else:
        limit = max(1, min(raw_limit, 200))

    runs = [_run_to_dict(run) for run in db.list_recent_runs(limit)]
    return jsonify({"ok": True, "count": len(runs), "runs": runs})


@app.get("/api/runs/latest")
def api_runs_latest() -> Response:
    run = db.get_latest_run()
    if run is None:
        return jsonify({"ok": False, "error": "no runs"}), 404
    return jsonify({"ok": True, "run": _run_to_dict(run)})


@app.get("/api/runs/<int:run_id>")
def api_run_detail(run_id: int) -> Response:
    run = db.get_run(run_id)
    if run is None:
        return jsonify({"ok": False, "error": "run_not_found", "run_id": run_id}), 404
    return jsonify({"ok": True, "run": _run_to_dict(run)})


@app.get("/api/cases/<docket_number>")
def api_case_detail(docket_number: str) -> Response:
    """Return a stored case with its persisted events and documents."""

    case = db.get_case(docket_number)
    if case is None:
        return jsonify({"ok": False, "error": "case_not_found"}), 404

    case_payload = asdict(case)
    case_payload["represented_side"] = case.represented_side.value if case.represented_side else None
    case_payload.pop("raw_data", None)
    events = []
    for event in db.get_events_for_case(docket_number):
        item = asdict(event)
        item.pop("raw_data", None)
        events.append(item)
    documents = [asdict(doc) for doc in db.get_documents_for_case(docket_number)]
    return jsonify({"ok": True, "case": case_payload, "events": events, "documents": documents})


@app.get("/documents/<path:path>")
def download_document(path: str) -> Response:
    """Serve a stored blob when the signed token is valid and unexpired."""

    store = get_store()
    token = request.args.get("token", "")
    if not token or not store.verify_token(token, path):
        _scraper_event("error", phase="documents", error="invalid_token", path=path, remote_addr=request.remote_addr)
        return Response("Invalid or expired token", status=403)

    try:
        target = store.open(path)
    except ValueError:
        return Response("Invalid path", status=400)
    except FileNotFoundError:
        return Response("File not found", status=404)
    return send_file(target, download_name=target.name)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port)
