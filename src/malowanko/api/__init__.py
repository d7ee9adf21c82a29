"""Malowanko — FastAPI REST API layer.

This package contains the FastAPI application and the read-side queries it
serves.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
gallery_store
    Public gallery filtering, sorting, pagination, and image lookup.
library_store
    Personal library listing.
"""
