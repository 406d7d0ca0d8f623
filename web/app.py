"""
Flask web server for the knowledge extractor.

Routes
──────
POST /analyze            Analyse one text, persist and return the result
POST /batch-analyze      Analyse 1–10 texts; per-item failures in "failed"
GET  /search             Filter stored analyses by topic / keyword (JSON)
GET  /analyses/<id>      Fetch one stored analysis (JSON)
GET  /stats              Aggregate statistics over stored analyses
GET  /health             Provider availability probe

Every error response has the shape {"error": ..., "code": ..., "details": ...}.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from pydantic import BaseModel, ValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.settings import Settings
from core.errors import AnalysisError, EmptyInputError, MalformedRequestError, NotFoundError
from core.models import (
    AnalyzeRequest,
    AnalyzeResponse,
    BatchAnalyzeRequest,
    BatchAnalyzeResponse,
    ErrorResponse,
    SearchQuery,
)
from core.pipeline import AnalysisPipeline
from core.providers import AnalysisProvider, create_provider
from core.store import AnalysisStore

logger = logging.getLogger(__name__)


def _parse_body(model: type[BaseModel]) -> BaseModel:
    """Validate the JSON request body against *model*."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise MalformedRequestError("request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedRequestError(str(exc)) from exc


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise MalformedRequestError(f"{name} must be an integer") from exc


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[AnalysisProvider] = None,
    store: Optional[AnalysisStore] = None,
) -> Flask:
    """Build the Flask application.

    Args:
        settings: Configuration; read from the environment if omitted.
        provider: Analysis provider; built from ``settings.llm_provider`` if omitted.
        store: Record store; opened at ``settings.db_path`` if omitted.

    Raises:
        ValueError: If the configured provider is unknown or misconfigured.
    """
    settings = settings or Settings()

    if provider is None:
        settings.validate()
        provider = create_provider(settings)
    if store is None:
        store = AnalysisStore(settings.db_path)
    store.init_db()

    pipeline = AnalysisPipeline(
        provider,
        store,
        keyword_count=settings.keyword_count,
        request_timeout=settings.request_timeout,
        item_timeout=settings.item_timeout,
    )
    logger.info("LLM provider: %s", provider.name or type(provider).__name__)

    app = Flask(__name__)

    @app.errorhandler(AnalysisError)
    def handle_analysis_error(exc: AnalysisError):
        body = ErrorResponse(error=exc.message, code=exc.code, details=exc.details)
        return jsonify(body.model_dump()), exc.status

    # ── Analysis ───────────────────────────────────────────────────────────

    @app.post("/analyze")
    async def analyze():
        """Analyse a single text."""
        req = _parse_body(AnalyzeRequest)
        if not req.text or not req.text.strip():
            raise EmptyInputError()

        record = await pipeline.analyze(req.text)
        return jsonify(AnalyzeResponse.from_record(record).model_dump(mode="json"))

    @app.post("/batch-analyze")
    async def batch_analyze():
        """Analyse up to 10 texts with bounded concurrency."""
        req = _parse_body(BatchAnalyzeRequest)
        outcome = await pipeline.run_batch(req.texts)

        body = BatchAnalyzeResponse(
            results=[AnalyzeResponse.from_record(r) for r in outcome.results],
            failed=outcome.failed,
        )
        return jsonify(body.model_dump(mode="json"))

    # ── Retrieval ──────────────────────────────────────────────────────────

    @app.get("/search")
    def search():
        """Search stored analyses; see ``AnalysisStore.search``."""
        query = SearchQuery(
            topic=request.args.get("topic", ""),
            keyword=request.args.get("keyword", ""),
            limit=_int_arg("limit", 0),
            offset=_int_arg("offset", 0),
        )
        records = store.search(query)
        return jsonify(
            {
                "results": [r.model_dump(mode="json") for r in records],
                "count": len(records),
                "query": query.model_dump(),
            }
        )

    @app.get("/analyses/<record_id>")
    def get_analysis(record_id: str):
        record = store.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"no analysis with id {record_id}")
        return jsonify(record.model_dump(mode="json"))

    @app.get("/stats")
    def stats():
        return jsonify(store.stats().model_dump(mode="json"))

    @app.get("/health")
    def health():
        available = provider.is_available()
        return jsonify(
            {
                "status": "ok" if available else "degraded",
                "provider": provider.name,
                "provider_available": available,
            }
        )

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    settings = Settings()
    app = create_app(settings)
    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
