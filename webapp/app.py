from __future__ import annotations

import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify, make_response, request

from seqsearch.errors import SearchArgumentError, SearchInternalError
from seqsearch.log import configure_logging
from seqsearch.params import SearchRequest, parse_corpus_ids, to_bool
from seqsearch.sequences import type_of_sequences
from seqsearch.service import SearchService, build_service

app = Flask(__name__)

SERVICE: Optional[SearchService] = None
_SERVICE_LOCK = threading.Lock()


def get_service() -> SearchService:
    global SERVICE
    with _SERVICE_LOCK:
        if SERVICE is None:
            service = build_service()
            configure_logging(service.settings.log_level)
            SERVICE = service
        return SERVICE


def _internal_error_response(exc: SearchInternalError):
    app.logger.error("Search failed internally: %s", exc)
    return jsonify({"error": "The search could not be completed because of a server-side error."}), 500


def _configuration_error_response(exc: Exception):
    app.logger.exception("Search service is not configured")
    return jsonify({"error": str(exc)}), 500


def _json_object() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("request body must be a JSON object")
    return payload


@app.get("/api/config")
def api_config():
    try:
        service = get_service()
    except (RuntimeError, ValueError) as exc:
        return _configuration_error_response(exc)

    return jsonify(
        {
            "algorithms": service.algorithms(),
            "corpora": [
                {"id": entry.id, "title": entry.title, "kind": entry.kind}
                for entry in service.corpora().values()
            ],
            "corpora_by_kind": {
                kind: service.settings.corpus_ids_by_kind(kind) for kind in ("nucleotide", "protein")
            },
        }
    )


@app.post("/api/search")
def api_search():
    try:
        payload = _json_object()
        search_request = SearchRequest.from_payload(payload)
        include_raw = to_bool(payload.get("include_raw"), default=False, name="include_raw")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        service = get_service()
    except (RuntimeError, ValueError) as exc:
        return _configuration_error_response(exc)

    try:
        result = service.run(search_request)
    except SearchArgumentError as exc:
        app.logger.info("Rejected search: %s", exc)
        return jsonify({"error": str(exc)}), 400
    except SearchInternalError as exc:
        return _internal_error_response(exc)

    body = service.result_payload(result, search_request.corpus_ids)
    if include_raw:
        body["raw"] = "".join(result.raw_lines)
    return jsonify(body)


@app.get("/entries")
def entries():
    # Ids and corpus ids are separated by whitespace, which neither may contain.
    sequence_ids = str(request.args.get("id", "")).split()
    corpus_ids = list(parse_corpus_ids(request.args.get("corpus", "")))

    try:
        service = get_service()
    except (RuntimeError, ValueError) as exc:
        return _configuration_error_response(exc)

    try:
        batch = service.fetch_entries(sequence_ids, corpus_ids)
    except SearchArgumentError as exc:
        return jsonify({"error": str(exc)}), 400
    except SearchInternalError as exc:
        return _internal_error_response(exc)

    response = make_response(batch.text)
    response.headers["Content-Type"] = "text/plain; charset=utf-8"
    response.headers["X-Entries-Requested"] = str(len(batch.requested))
    response.headers["X-Entries-Found"] = str(batch.found)
    return response


@app.post("/api/detect_type")
def api_detect_type():
    try:
        payload = _json_object()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    sequence = str(payload.get("sequence", ""))
    if not sequence.strip():
        return jsonify({"error": "sequence is required"}), 400
    try:
        kind = type_of_sequences(sequence)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"type": kind})


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=4567, debug=False, threaded=True)
