"""
Factory Inspection - record keeping for factory inspections

This package provides both sides of the inspection record workflow:

- A FastAPI service storing factories and inspections in SQLite
- Async data-access hooks over httpx with an injected query cache
- A multi-step inspection form with per-step validation
- Gregorian to Hebrew date conversion for the inspection date
- PDF report generation, preview and download, with an optional S3 archive

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - database: SQLite persistence for factories and inspections
    - models: Pydantic models for records and form steps
    - hooks / query_cache: client-side REST access and caching
    - form: multi-step form controller
    - hebrew_dates: calendar conversion adapter
    - report / report_archive: PDF rendering and S3 upload
    - configuration: Config loading and merging logic

Usage:
    Run the API server with:
        uvicorn factory_inspection.main:app --reload --host 0.0.0.0 --port 8000
"""
