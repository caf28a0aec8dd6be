from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends

from ...exporting import export_sessions_csv
from ...reporting import generate_report
from ...service import StatsService
from ..deps import get_service
from ..schemas import FileResult, OutDirRequest

router = APIRouter(prefix="/api/v1", tags=["export"])

DEFAULT_OUT_DIR = Path(__file__).resolve().parents[2] / "out"


@router.post("/report", response_model=FileResult)
def write_report(payload: OutDirRequest, service: StatsService = Depends(get_service)) -> FileResult:
    out_dir = Path(payload.out_dir) if payload.out_dir else DEFAULT_OUT_DIR
    report_path = generate_report(service.load(), out_dir)
    return FileResult(path=str(report_path))


@router.post("/export/csv", response_model=FileResult)
def export_csv(payload: OutDirRequest, service: StatsService = Depends(get_service)) -> FileResult:
    out_dir = Path(payload.out_dir) if payload.out_dir else DEFAULT_OUT_DIR
    csv_path = export_sessions_csv(service.db, service.user_id, out_dir)
    return FileResult(path=str(csv_path))
