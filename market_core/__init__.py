"""Core (UI-agnostic) market dashboard logic.

This package contains:
- settings, logging setup and error types
- row sources (JSON -> pandas, or a relational store via SQLAlchemy)
- country / segment / process / material normalization
- aggregation and page compute functions (JSON-serializable payloads)
- the paginated table service and its TTL cache
- CSV / XLSX export
- chart helpers (Altair -> Vega-Lite spec dict)
"""
