"""
elib Backend - REST API for the elib book catalog

This package provides a FastAPI-based web service for a catalog of books,
each carrying a cover image and a document file kept in an S3-compatible
object store, with the book metadata kept in SQLite. It enables:

- Multipart uploads staged as short-lived local files
- Creating, updating and deleting books together with their stored assets
- Ownership checks based on per-owner API keys
- Plain listing and lookup of books

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - coordinator: Asset lifecycle coordinator for create/update/delete
    - staging: Multipart uploads to validated temporary files
    - asset_store: Object-store adapter (upload / destroy by asset kind)
    - asset_ids: Store identifiers derived from stored asset URLs
    - database: SQLite book repository
    - key_manager / authorization: API keys, identity and ownership checks
    - configuration: Layered settings (defaults, YAML file, environment)

Usage:
    Run the API server with:
        uvicorn elib_backend.main:app --reload --host 0.0.0.0 --port 8000

Known gaps:
    - Assets uploaded during a create that later fails are not removed
    - Concurrent updates of one book race; the last write wins
"""
