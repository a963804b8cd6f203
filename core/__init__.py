"""Core (UI-agnostic) org intelligence logic.

This package contains:
- org chart loading, validation and agentic FTE enrichment
- snapshots and period-over-period comparison
- usage ingestion, benchmarks and the sentiment pipeline
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
