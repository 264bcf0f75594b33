"""
Catering Sheet Extractor — API Server
======================================
Flask JSON API over the extraction engine.
Accepts workbook uploads (multipart or base64 JSON) and returns one result
per sheet: detected layout, records, metadata and diagnostics.

Usage:
    python server.py
    curl -F "files=@menu.xlsx" http://localhost:5000/api/extract
"""

import base64
import logging
import os
import uuid

from flask import Flask, jsonify, request
from flask_cors import CORS

import config
from extractor import LAYOUTS, extract_workbook, get_layout

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────
# APP SETUP
# ─────────────────────────────────────────────────────────────

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET_KEY", "sheet-extractor-" + uuid.uuid4().hex[:8])
app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_MB * 1024 * 1024

CORS(app)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _collect_uploads(errors):
    """Uploaded files as [{"filename", "bytes"}] from base64 JSON or multipart."""
    files_to_process = []

    # JSON Base64 upload: {"files": [{"name": ..., "data": "data:...;base64,...."}]}
    if request.is_json:
        files = _json_body().get("files")
        for f in files if isinstance(files, list) else []:
            if not isinstance(f, dict):
                continue
            fname = f.get("name")
            fdata = f.get("data")
            if not (isinstance(fname, str) and fname and isinstance(fdata, str)):
                continue
            # Strip header if present
            b64data = fdata.split(",", 1)[1] if "," in fdata else fdata
            try:
                files_to_process.append({"filename": fname, "bytes": base64.b64decode(b64data)})
            except (ValueError, TypeError) as e:
                errors.append({"file": fname, "error": f"base64 decode failed: {e}"})

    # Fallback to standard Multipart upload
    if not files_to_process and "files" in request.files:
        for f in request.files.getlist("files"):
            if f.filename:
                files_to_process.append({"filename": f.filename, "bytes": f.read()})

    return files_to_process


def _requested_layout():
    if request.is_json:
        name = _json_body().get("layout")
    else:
        name = request.form.get("layout")
    if not isinstance(name, str):
        name = None
    return name or request.args.get("layout") or None


# ─────────────────────────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────────────────────────

@app.route("/health")
def health():
    return jsonify({"status": "ok", "layouts": len(LAYOUTS)})


@app.route("/api/layouts")
def list_layouts():
    """Known sheet layouts and the record fields each one emits."""
    return jsonify({"layouts": [layout.to_dict() for layout in LAYOUTS.values()]})


@app.route("/api/extract", methods=["POST"])
def extract_files():
    """Accept one or more workbooks, extract every sheet, return JSON results."""
    errors = []
    files_to_process = _collect_uploads(errors)

    if not files_to_process and not errors:
        return jsonify({"error": "No files provided"}), 400

    layout_name = _requested_layout()
    layout = None
    if layout_name:
        try:
            layout = get_layout(layout_name)
        except KeyError as e:
            errors.append({"file": None, "error": str(e.args[0])})
            return jsonify({"results": {}, "errors": errors})

    results = {}
    for f in files_to_process:
        fname = f["filename"]
        try:
            sheets = extract_workbook(f["bytes"], layout=layout, filename=fname)
            results[fname] = [r.to_dict() for r in sheets]
        except Exception as e:
            logger.exception("Extraction failed for '%s'", fname)
            errors.append({"file": fname, "error": str(e)})

    return jsonify({"results": results, "errors": errors})


@app.errorhandler(413)
def too_large(_e):
    return jsonify({"error": f"Upload exceeds {config.MAX_UPLOAD_MB} MB"}), 413


if __name__ == "__main__":
    config.configure_logging()
    port = config.PORT
    print(f"\n  Sheet extractor API running at http://localhost:{port}\n")
    app.run(debug=False, host="0.0.0.0", port=port)
