from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from omegaconf import DictConfig

from . import report_archive
from .configuration import get_config
from .database import InspectionDatabase
from .errors import GenerationError
from .logging_config import configure_logging
from .models import (
    Factory,
    FactoryCreate,
    FactoryUpdate,
    Inspection,
    InspectionCreate,
    InspectionUpdate,
    ReportArchive,
)
from .report import ReportRenderer, filename_for

config = get_config()
configure_logging(config)
logger = logging.getLogger(__name__)

app = FastAPI(title="Factory Inspection API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.server.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_settings() -> DictConfig:
    return config


@lru_cache(maxsize=1)
def get_database() -> InspectionDatabase:
    return InspectionDatabase(Path(config.server.database_path))


@lru_cache(maxsize=1)
def get_renderer() -> ReportRenderer:
    return ReportRenderer(config)


def _require_factory(db: InspectionDatabase, factory_id: int) -> Dict:
    record = db.get_factory(factory_id)
    if not record:
        raise HTTPException(status_code=404, detail="Factory not found")
    return record


def _require_inspection(db: InspectionDatabase, inspection_id: int) -> Inspection:
    record = db.get_inspection(inspection_id)
    if not record:
        raise HTTPException(status_code=404, detail="Inspection not found")
    return Inspection.model_validate(record)


def _check_factory_reference(db: InspectionDatabase, factory_id) -> None:
    if factory_id is not None and not db.get_factory(factory_id):
        raise HTTPException(status_code=422, detail=f"Unknown factory id {factory_id}")


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


# Factories


@app.get("/api/factories", response_model=List[Factory])
def list_factories(db: InspectionDatabase = Depends(get_database)) -> List[Factory]:
    return [Factory.model_validate(record) for record in db.list_factories()]


@app.get("/api/factories/search", response_model=List[Factory])
def search_factories(q: str = Query(""), db: InspectionDatabase = Depends(get_database)) -> List[Factory]:
    return [Factory.model_validate(record) for record in db.search_factories(q)]


@app.get("/api/factories/{factory_id}", response_model=Factory)
def get_factory(factory_id: int, db: InspectionDatabase = Depends(get_database)) -> Factory:
    return Factory.model_validate(_require_factory(db, factory_id))


@app.post("/api/factories", response_model=Factory, status_code=201)
def create_factory(payload: FactoryCreate, db: InspectionDatabase = Depends(get_database)) -> Factory:
    return Factory.model_validate(db.create_factory(payload.model_dump()))


@app.put("/api/factories/{factory_id}", response_model=Factory)
def update_factory(factory_id: int, payload: FactoryUpdate, db: InspectionDatabase = Depends(get_database)) -> Factory:
    record = db.update_factory(factory_id, payload.model_dump(exclude_unset=True, exclude_none=True))
    if not record:
        raise HTTPException(status_code=404, detail="Factory not found")
    return Factory.model_validate(record)


@app.delete("/api/factories/{factory_id}", status_code=204)
def delete_factory(factory_id: int, db: InspectionDatabase = Depends(get_database)) -> Response:
    if not db.delete_factory(factory_id):
        raise HTTPException(status_code=404, detail="Factory not found")
    return Response(status_code=204)


# Inspections


@app.get("/api/inspections", response_model=List[Inspection])
def list_inspections(db: InspectionDatabase = Depends(get_database)) -> List[Inspection]:
    return [Inspection.model_validate(record) for record in db.list_inspections()]


@app.get("/api/inspections/{inspection_id}", response_model=Inspection)
def get_inspection(inspection_id: int, db: InspectionDatabase = Depends(get_database)) -> Inspection:
    return _require_inspection(db, inspection_id)


@app.post("/api/inspections", response_model=Inspection, status_code=201)
def create_inspection(payload: InspectionCreate, db: InspectionDatabase = Depends(get_database)) -> Inspection:
    _check_factory_reference(db, payload.factory_id)
    return Inspection.model_validate(db.create_inspection(payload.model_dump()))


@app.put("/api/inspections/{inspection_id}", response_model=Inspection)
def update_inspection(
    inspection_id: int,
    payload: InspectionUpdate,
    db: InspectionDatabase = Depends(get_database),
) -> Inspection:
    _check_factory_reference(db, payload.factory_id)
    changes = payload.model_dump(exclude_unset=True)
    # Required columns can't be cleared; factory_id may be unset with null
    changes = {key: value for key, value in changes.items() if value is not None or key == "factory_id"}
    record = db.update_inspection(inspection_id, changes)
    if not record:
        raise HTTPException(status_code=404, detail="Inspection not found")
    return Inspection.model_validate(record)


@app.delete("/api/inspections/{inspection_id}", status_code=204)
def delete_inspection(inspection_id: int, db: InspectionDatabase = Depends(get_database)) -> Response:
    if not db.delete_inspection(inspection_id):
        raise HTTPException(status_code=404, detail="Inspection not found")
    return Response(status_code=204)


# Reports


async def _render(renderer: ReportRenderer, inspection: Inspection) -> bytes:
    try:
        return await renderer.generate(inspection)
    except GenerationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/api/inspections/{inspection_id}/report")
async def inspection_report(
    inspection_id: int,
    db: InspectionDatabase = Depends(get_database),
    renderer: ReportRenderer = Depends(get_renderer),
) -> Response:
    inspection = _require_inspection(db, inspection_id)
    content = await _render(renderer, inspection)
    filename = quote(filename_for(inspection))
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@app.post("/api/inspections/{inspection_id}/report/archive", response_model=ReportArchive)
async def archive_inspection_report(
    inspection_id: int,
    db: InspectionDatabase = Depends(get_database),
    renderer: ReportRenderer = Depends(get_renderer),
    settings: DictConfig = Depends(get_settings),
) -> ReportArchive:
    if not report_archive.is_s3_configured(settings):
        raise HTTPException(status_code=503, detail="Report archive is not configured")

    inspection = _require_inspection(db, inspection_id)
    content = await _render(renderer, inspection)

    archive = settings.report_archive
    s3_key = report_archive.archive_key(inspection, archive.prefix)
    if not report_archive.upload_report(content, s3_key, archive.bucket):
        raise HTTPException(status_code=502, detail="Report upload failed")

    url = report_archive.generate_presigned_url(s3_key, archive.bucket, archive.url_expiration)
    return ReportArchive(s3_key=s3_key, url=url)
