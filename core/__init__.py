"""
knowledge-extractor core package.

Modules
───────
models      — Pydantic data models (AnalysisRecord, AnalysisMetadata, SearchQuery, …)
errors      — Error taxonomy with machine-readable codes
keywords    — Local noun-like keyword extraction
confidence  — Heuristic confidence score for an analysis
providers   — Analysis providers (mock, Anthropic) and the provider factory
store       — SQLite-backed analysis records (save, get_by_id, search, stats)
pipeline    — Single-item and bounded-concurrency batch analysis
"""
