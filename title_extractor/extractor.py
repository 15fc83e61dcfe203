"""Main extraction orchestrator"""
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .classifier import classify
from .config import TEMP_DIR
from .exceptions import ExtractionError
from .jobs import JobRegistry, PipelineState
from .models import ExtractedDocument
from .progress import ProgressChannel, Stage
from .structuring import StructuringStage
from .text_extractor import TextExtractor

logger = logging.getLogger(__name__)


class TitleExtractor:
    """
    Runs one document through the pipeline:

        received -> classifying -> extracting -> ai_extracting -> complete

    Any failure moves the job to ``error``: the job is marked failed with the
    message, a single ``error`` progress event is published and the exception
    is re-raised to the caller.
    """

    def __init__(self,
                 structuring: StructuringStage,
                 text_extractor: Optional[TextExtractor] = None,
                 jobs: Optional[JobRegistry] = None,
                 progress: Optional[ProgressChannel] = None,
                 temp_dir: str = TEMP_DIR):
        self.progress = progress if progress is not None else structuring.progress
        self.structuring = structuring
        self.structuring.progress = self.progress
        self.text_extractor = text_extractor if text_extractor is not None else TextExtractor()
        self.jobs = jobs if jobs is not None else JobRegistry()
        self.temp_dir = temp_dir

    async def submit(self,
                     path: Union[str, Path],
                     *,
                     filename: Optional[str] = None,
                     media_type: Optional[str] = None,
                     job_id: Optional[str] = None,
                     metadata: Optional[Dict[str, Any]] = None,
                     force_accurate: bool = False) -> ExtractedDocument:
        """
        Extract structured title records from a file

        Args:
            path: File to process
            filename: Original filename (defaults to the path's name); its
                extension drives format detection
            media_type: Declared media type, used when the extension is unknown
            job_id: Caller-chosen id so progress can be subscribed beforehand
            metadata: Opaque data stored on the job
            force_accurate: Skip the fast tier

        Returns:
            The ExtractedDocument, also stored on the job

        Raises:
            ExtractionError: any pipeline failure (the job is marked failed)
        """
        job_id = job_id or str(uuid.uuid4())
        filename = filename or Path(path).name
        self.jobs.create(job_id, filename, metadata)
        logger.info("[%s] Processing %s (%s)", job_id, filename, media_type or "unknown type")

        try:
            self.progress.emit(job_id, Stage.UPLOAD, 10, "File received, starting processing...",
                               {"filename": filename})

            self.jobs.set_stage(job_id, PipelineState.CLASSIFYING)
            self.progress.emit(job_id, Stage.PROCESSING, 15, "Analyzing document type...", None)
            kind = classify(filename, media_type)

            self.jobs.set_stage(job_id, PipelineState.EXTRACTING)
            os.makedirs(self.temp_dir, exist_ok=True)
            with tempfile.TemporaryDirectory(prefix=f"{job_id}-", dir=self.temp_dir) as work_dir:
                text = await self.text_extractor.extract(
                    path, kind, work_dir=work_dir,
                    report=lambda stage, pct, msg, detail: self.progress.emit(job_id, stage, pct, msg, detail),
                )
            logger.info("[%s] Extracted %d chars of %s text", job_id, len(text), kind.value)

            self.jobs.set_stage(job_id, PipelineState.AI_EXTRACTING)
            result = await self.structuring.structure(text, job_id=job_id, force_accurate=force_accurate)
        except Exception as e:
            message = e.message if isinstance(e, ExtractionError) else str(e) or type(e).__name__
            if isinstance(e, ExtractionError):
                logger.error("[%s] Failed: %s", job_id, e)
            else:
                logger.exception("[%s] Unexpected failure", job_id)
            self.jobs.fail(job_id, message)
            self.progress.emit(job_id, Stage.ERROR, 0, f"Error: {message}", None)
            raise

        self.jobs.set_result(job_id, result)
        self.progress.emit(job_id, Stage.COMPLETE, 100, "Processing complete!", result.record_counts())
        logger.info("[%s] Complete: %s", job_id, result.record_counts())
        return result
