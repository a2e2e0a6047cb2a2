from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from core.errors import NotFoundError, ValidationError
from core.exporters.csv_feed import FEED_FILENAME
from core.models import UploadCredentials
from core.service import NaldaSyncService

router = APIRouter(tags=["Nalda Feed Export"])


class ConnectionTestRequest(BaseModel):
    ftp_type: str = "ftp"
    server: str = ""
    port: Optional[int] = None
    username: str = ""
    password: str = ""
    path: str = "/"
    ssl: bool = False

    def to_credentials(self) -> UploadCredentials:
        return UploadCredentials.from_mapping(
            {
                "enabled": True,
                "protocol": self.ftp_type,
                "host": self.server,
                "port": self.port,
                "username": self.username,
                "password": self.password,
                "remote_path": self.path,
                "use_tls": self.ssl,
            }
        )


def get_service(request: Request) -> NaldaSyncService:
    return request.app.state.service


@router.post("/start-export")
def start_export(service: NaldaSyncService = Depends(get_service)):
    """Start a progressive export; 409 with the active run id if one is running."""
    try:
        outcome = service.jobs.start_run()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not outcome.started:
        return JSONResponse(
            status_code=409,
            content={
                "error": "An export is already in progress. Please wait for it to complete.",
                "active_run_id": outcome.run_id,
            },
        )
    return {"run_id": outcome.run_id}


@router.get("/progress")
def get_progress(run_id: str, service: NaldaSyncService = Depends(get_service)):
    try:
        return service.jobs.get_progress(run_id).to_dict()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/active-run")
def get_active_run(service: NaldaSyncService = Depends(get_service)):
    active = service.jobs.get_active_run()
    if active is None:
        return {"active": False}
    run_id, record = active
    return {"active": True, "run_id": run_id, "progress": record.to_dict()}


@router.post("/run-export-now")
def run_export_now(service: NaldaSyncService = Depends(get_service)):
    """Synchronous export; blocks until the feed is written (and uploaded)."""
    try:
        return service.run_export_now().to_dict()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/logs")
def get_logs(service: NaldaSyncService = Depends(get_service)):
    return service.get_logs()


@router.post("/clear-logs")
def clear_logs(service: NaldaSyncService = Depends(get_service)):
    service.clear_logs()
    return {"cleared": True}


@router.post("/test-connection")
def test_connection(body: ConnectionTestRequest, service: NaldaSyncService = Depends(get_service)):
    try:
        credentials = body.to_credentials()
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})
    outcome = service.test_connection(credentials)
    return {"success": outcome.success, "message": outcome.message}


@router.get("/download-csv")
def download_csv(service: NaldaSyncService = Depends(get_service)):
    try:
        path = service.csv_path()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return FileResponse(
        path,
        media_type="text/csv; charset=utf-8",
        filename=FEED_FILENAME,
        headers={"Cache-Control": "no-cache, must-revalidate"},
    )


@router.get("/csv-info")
def get_csv_info(service: NaldaSyncService = Depends(get_service)):
    info = service.csv_info()
    if info is None:
        raise HTTPException(status_code=404, detail="CSV file not found. Please generate the export first.")
    return info


def create_app(service: NaldaSyncService) -> FastAPI:
    app = FastAPI(
        title="Nalda Feed Export API",
        description="Trigger, poll and download the Nalda marketplace product feed.",
        version="1.0.0",
    )
    app.state.service = service
    app.include_router(router)

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Nalda feed exporter is running"}

    return app
