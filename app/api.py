"""
FastAPI routes for ledger upload, analysis and mapping edits.
Pipeline errors are translated into HTTP errors here; no partial results are returned.
"""
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from core.config import get_settings
from core.db import SqliteMappingStore
from core.exceptions import (
    ExportError,
    LedgerAnalyzerException,
    ParseError,
    UnsupportedFormatError,
    ValidationError,
)
from core.exporters import create_output_filename, export_analysis_to_excel
from core.logger import setup_logger
from core.schema import AnalysisResult
from services.analysis_service import AnalysisService

logger = setup_logger(__name__)
settings = get_settings()

app = FastAPI(
    title="Bank Ledger Analyzer",
    description="Categorize bank ledger exports and detect recurring payments",
    version="1.0.0"
)

# In-memory analysis cache keyed by analysis id, oldest first (parsed transactions are reused on reclassify)
analyses: Dict[str, Dict[str, Any]] = {}

_service: Optional[AnalysisService] = None


def get_analysis_service() -> AnalysisService:
    """Service backed by the configured sqlite mapping store."""
    global _service
    if _service is None:
        _service = AnalysisService(SqliteMappingStore(get_settings().database_path))
    return _service


class BusinessRenameRequest(BaseModel):
    original_names: List[str] = Field(..., min_length=1)
    new_name: str


class BusinessGroupRequest(BaseModel):
    business_name: str
    group: str


class GroupRequest(BaseModel):
    name: str


def raise_http_error(error: LedgerAnalyzerException) -> None:
    """Translate a pipeline error into an HTTPException."""
    if isinstance(error, (UnsupportedFormatError, ValidationError)):
        status_code = 400
    elif isinstance(error, ParseError):
        status_code = 422
    else:
        status_code = 500
    raise HTTPException(
        status_code=status_code,
        detail={"message": error.message, "details": error.details},
    )


def decode_ledger(content: bytes) -> str:
    """Decode an uploaded ledger; DSK exports are UTF-8 or Windows-1251."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Ledger is not UTF-8, decoding as Windows-1251")
        return content.decode("cp1251")


def get_analysis(analysis_id: str) -> Dict[str, Any]:
    if analysis_id not in analyses:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return analyses[analysis_id]


def remove_export(output_path: str) -> None:
    """Delete a generated workbook after it has been sent."""
    try:
        Path(output_path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove export {output_path}: {e}")


def store_analysis(analysis_id: str, result: AnalysisResult) -> Dict[str, Any]:
    """Cache a result under its id, evicting the least recently stored analyses."""
    analyses.pop(analysis_id, None)
    analyses[analysis_id] = {
        "analysis_id": analysis_id,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "bank_id": result.bank_id,
        "transactions": sorted(result.transactions, key=lambda t: t.sequence),
        "result": result,
    }

    limit = get_settings().max_cached_analyses
    while len(analyses) > limit:
        evicted = next(iter(analyses))
        analyses.pop(evicted, None)
        logger.info(f"Evicted cached analysis {evicted}")

    return {"analysis_id": analysis_id, "result": result.model_dump(mode="json")}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "ledger_analyzer",
        "version": "1.0.0"
    }


@app.post("/analyze")
async def analyze_ledger(
    ledger_file: UploadFile = File(...),
    service: AnalysisService = Depends(get_analysis_service),
):
    """
    Analyze an uploaded ledger export.

    Returns:
        analysis_id for follow-up calls and the full analysis result
    """
    logger.info(f"Received ledger: {ledger_file.filename}")
    content = await ledger_file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    try:
        raw_ledger = decode_ledger(content)
    except UnicodeDecodeError as e:
        logger.error(f"Could not decode ledger: {e}")
        raise HTTPException(status_code=400, detail="Ledger encoding is not supported")

    try:
        result = await run_in_threadpool(service.analyze, raw_ledger)
    except LedgerAnalyzerException as e:
        logger.error(f"Analysis failed: {e.message}")
        raise_http_error(e)

    return store_analysis(str(uuid.uuid4()), result)


@app.get("/analysis/{analysis_id}")
def get_analysis_result(analysis_id: str):
    """Return a cached analysis result."""
    analysis = get_analysis(analysis_id)
    return {"analysis_id": analysis_id, "result": analysis["result"].model_dump(mode="json")}


@app.post("/analysis/{analysis_id}/reclassify")
def reclassify_analysis(
    analysis_id: str,
    service: AnalysisService = Depends(get_analysis_service),
):
    """Re-resolve names of cached transactions with the current mappings."""
    analysis = get_analysis(analysis_id)
    result = service.reclassify(analysis["transactions"], bank_id=analysis["bank_id"])
    return store_analysis(analysis_id, result)


@app.get("/analysis/{analysis_id}/export")
def export_analysis(analysis_id: str, background_tasks: BackgroundTasks):
    """Download the analysis as an Excel workbook; the file is removed once sent."""
    analysis = get_analysis(analysis_id)
    output_path = create_output_filename(f"ledger_analysis_{analysis_id[:8]}")

    try:
        export_analysis_to_excel(analysis["result"], output_path)
    except ExportError as e:
        raise_http_error(e)

    background_tasks.add_task(remove_export, output_path)
    return FileResponse(
        path=output_path,
        filename=Path(output_path).name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )


@app.put("/mappings/business")
def rename_business(
    request: BusinessRenameRequest,
    service: AnalysisService = Depends(get_analysis_service),
):
    """Map raw counterpart names to a new business name."""
    try:
        service.settings.rename_business(request.original_names, request.new_name)
    except ValidationError as e:
        raise_http_error(e)
    return {"custom_mappings": service.settings.get_custom_mappings()}


@app.delete("/mappings/business/{original_name}")
def delete_business_mapping(
    original_name: str,
    service: AnalysisService = Depends(get_analysis_service),
):
    """Remove a custom business name mapping."""
    if not service.settings.delete_custom_mapping(original_name):
        raise HTTPException(status_code=404, detail="Mapping not found")
    return {"custom_mappings": service.settings.get_custom_mappings()}


@app.put("/mappings/group")
def set_business_group(
    request: BusinessGroupRequest,
    service: AnalysisService = Depends(get_analysis_service),
):
    """Assign a business to a spending group."""
    try:
        service.settings.set_business_group(request.business_name, request.group)
    except ValidationError as e:
        raise_http_error(e)
    return {"business_group_mappings": service.settings.get_business_group_mappings()}


@app.get("/groups")
def list_groups(service: AnalysisService = Depends(get_analysis_service)):
    """List default and custom groups."""
    return {
        "groups": service.settings.all_groups(),
        "custom_groups": service.settings.get_custom_groups(),
    }


@app.post("/groups", status_code=201)
def add_group(
    request: GroupRequest,
    service: AnalysisService = Depends(get_analysis_service),
):
    """Create a custom group."""
    if not service.settings.add_custom_group(request.name):
        raise HTTPException(status_code=400, detail="Group name is empty or already exists")
    return {"groups": service.settings.all_groups()}


@app.delete("/groups/{group_name}")
def delete_group(
    group_name: str,
    service: AnalysisService = Depends(get_analysis_service),
):
    """Delete a custom group and its business mappings."""
    if group_name not in service.settings.get_custom_groups():
        raise HTTPException(status_code=404, detail="Custom group not found")
    service.settings.delete_custom_group(group_name)
    return {"groups": service.settings.all_groups()}


@app.get("/settings/export")
def export_settings(service: AnalysisService = Depends(get_analysis_service)):
    """Export the mapping tables as a settings bundle."""
    return service.settings.export_settings().model_dump(by_alias=True)


@app.post("/settings/import")
def import_settings(
    bundle: Dict[str, Any],
    service: AnalysisService = Depends(get_analysis_service),
):
    """Import a settings bundle exported earlier."""
    if not service.settings.import_settings(bundle):
        raise HTTPException(status_code=400, detail="Invalid settings file")
    return {"success": True, "message": "Settings imported"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
