"""FastAPI interface for title document extraction"""
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from .config import MAX_UPLOAD_BYTES, UPLOAD_DIR
from .exceptions import ExtractionError, UnsupportedFormat
from .extractor import TitleExtractor
from .jobs import JobRegistry
from .llm_client import LLMClient
from .progress import ProgressChannel
from .structuring import StructuringStage

logger = logging.getLogger(__name__)

app = FastAPI(title="Title Extractor API", version="1.0.0")

# Shared process-wide state: progress subscribers and job lifecycle
progress_channel = ProgressChannel()
job_registry = JobRegistry()

# Initialize extractor
extractor: Optional[TitleExtractor] = None


@app.on_event("startup")
async def startup_event():
    """Initialize extractor on startup"""
    global extractor
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    try:
        structuring = StructuringStage(LLMClient(), progress=progress_channel)
        extractor = TitleExtractor(structuring, jobs=job_registry, progress=progress_channel)
    except Exception as e:
        logger.warning("Failed to initialize extractor: %s", e)


def _parse_metadata(metadata: Optional[str]) -> Dict[str, Any]:
    if not metadata:
        return {}
    try:
        parsed = json.loads(metadata)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid metadata JSON: {str(e)}")
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=400, detail="Metadata must be a JSON object")
    return parsed


async def _save_upload(upload: UploadFile) -> Path:
    """Write an upload to UPLOAD_DIR under a unique name"""
    data = await upload.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    path = Path(UPLOAD_DIR) / f"{uuid.uuid4().hex}{Path(upload.filename or '').suffix.lower()}"
    with open(path, "wb") as f:
        f.write(data)
    return path


async def _run_extraction(upload: UploadFile, job_id: str, metadata: Dict[str, Any],
                          force_accurate: bool = False) -> JSONResponse:
    if extractor is None:
        raise HTTPException(status_code=500, detail="Extractor not initialized")

    saved_path = await _save_upload(upload)
    try:
        extracted = await extractor.submit(
            saved_path,
            filename=upload.filename or saved_path.name,
            media_type=upload.content_type,
            job_id=job_id,
            metadata=metadata,
            force_accurate=force_accurate,
        )
        return JSONResponse({
            "success": True,
            "jobId": job_id,
            "extractedData": extracted.to_dict(),
        })
    except UnsupportedFormat as e:
        return JSONResponse({"success": False, "jobId": job_id, "error": e.message}, status_code=400)
    except ExtractionError as e:
        return JSONResponse({"success": False, "jobId": job_id, "error": e.message}, status_code=500)
    except Exception as e:
        return JSONResponse({"success": False, "jobId": job_id, "error": f"Error processing file: {str(e)}"},
                            status_code=500)
    finally:
        try:
            os.remove(saved_path)
        except OSError:
            logger.debug("Could not remove upload %s", saved_path)


@app.post("/api/process-file")
async def process_file(
    file: UploadFile = File(...),
    jobId: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None),
    accurate: bool = Form(False),
):
    """
    Extract title records from an uploaded PDF, image, Word, HTML or text file.

    Accepts:
    - file: Uploaded document
    - jobId: Optional id chosen by the client, so it can open
      /api/progress/{jobId} before uploading
    - metadata: Optional JSON object stored with the job
    - accurate: Use the accurate model tier straight away

    Returns the extracted records.
    """
    job_id = jobId or str(uuid.uuid4())
    return await _run_extraction(file, job_id, _parse_metadata(metadata), force_accurate=accurate)


@app.post("/api/capture")
async def capture(
    image: UploadFile = File(...),
    metadata: Optional[str] = Form(None),
):
    """
    Extract title records from a screenshot of a records page.

    Accepts:
    - image: Screenshot (PNG/JPEG)
    - metadata: Optional JSON object, e.g. {"sourceUrl": "..."}
    """
    parsed = _parse_metadata(metadata)
    if image.content_type and not image.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Capture expects an image upload")
    logger.info("Capture from %s", parsed.get("sourceUrl", "unknown source"))
    return await _run_extraction(image, str(uuid.uuid4()), parsed)


@app.get("/api/progress/{job_id}")
async def progress_stream(job_id: str):
    """Server-Sent Events stream of progress for one job"""

    async def events():
        async for event in progress_channel.stream(job_id):
            yield f"data: {json.dumps(event.to_dict())}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/api/jobs")
async def list_jobs():
    """List all known jobs (most recent last)"""
    return [job.summary() for job in job_registry.list()]


@app.get("/api/jobs/{job_id}")
async def get_job(job_id: str):
    """Status of one job and, once complete, its extracted records"""
    job = job_registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "extractor_initialized": extractor is not None,
        "formats": ["PDF", "PNG", "JPG", "GIF", "BMP", "TIFF", "DOC", "DOCX", "HTML", "TXT"],
        "activeJobs": len(job_registry),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
