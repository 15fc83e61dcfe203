"""AI structuring: raw document text -> ExtractedDocument, with confidence escalation"""
import asyncio
import json
import logging
import re
from enum import Enum
from typing import Optional, Protocol

from pydantic import ValidationError

from .config import LLM_MODEL_ACCURATE, LLM_MODEL_FAST, LLM_TIMEOUT, MAX_TEXT_CHARS
from .exceptions import AiParseFailure, AiRequestFailure
from .models import ExtractedDocument
from .progress import ProgressChannel, Stage

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a title search document analyst. Extract all property record information from the document text supplied by the user.

Return ONLY valid JSON with exactly this structure:
{
  "deeds": [
    {
      "grantor": "Name transferring property",
      "grantee": "Name receiving property",
      "consideration": "Dollar amount",
      "noteDate": "Date on deed",
      "fileNumber": "Document number",
      "recordingDate": "Recording date",
      "bookPage": "Book/Page reference"
    }
  ],
  "deedsOfTrust": [
    {
      "grantor": "Borrower name",
      "amount": "Loan amount",
      "lender": "Lending institution",
      "status": "Open/Released",
      "trustee": "Trustee name",
      "maturityDate": "Maturity date",
      "noteDate": "Note date",
      "fileNumber": "Document number",
      "recordingDate": "Recording date",
      "bookPages": "Book/Page"
    }
  ],
  "judgments": [
    {
      "plaintiff": "Creditor",
      "defendant": "Debtor",
      "amount": "Amount",
      "judgmentDate": "Date",
      "fileNumber": "File number",
      "recordingDate": "Recording date",
      "bookPage": "Book/Page"
    }
  ],
  "liens": [
    {
      "type": "Type of lien",
      "creditor": "Lien holder",
      "amount": "Amount",
      "status": "Open/Released",
      "fileNumber": "Document number",
      "recordingDate": "Recording date"
    }
  ],
  "namesSearched": ["Every person or entity name found"],
  "propertyInfo": {
    "address": "Property address",
    "parcelNumber": "Parcel/Tax ID",
    "legalDescription": "Legal description"
  },
  "confidence": "high | medium | low"
}

Rules:
- Extract ALL records found.
- Use empty string "" for any missing field. Never use null and never omit a field.
- Copy dates exactly as written in the document; do not reformat them.
- Keep the currency symbol on amounts (e.g. "$250,000").
- Deed of trust and lien status is "Open" unless the document explicitly shows a release or satisfaction.
- List each name only once in namesSearched.
- Set confidence to "low" when the text is garbled, incomplete or ambiguous, "medium" when some fields are uncertain, "high" otherwise.

Example input:
Deed Book 123 Page 456 recorded 01/15/2024. John Smith, grantor, does hereby convey to ABC Holdings LLC for $250,000.

Example output:
{"deeds": [{"grantor": "John Smith", "grantee": "ABC Holdings LLC", "consideration": "$250,000", "noteDate": "", "fileNumber": "", "recordingDate": "01/15/2024", "bookPage": "Book 123 Page 456"}], "deedsOfTrust": [], "judgments": [], "liens": [], "namesSearched": ["John Smith", "ABC Holdings LLC"], "propertyInfo": {"address": "", "parcelNumber": "", "legalDescription": ""}, "confidence": "high"}
"""

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")


class Attempt(str, Enum):
    FAST = "fast"
    ACCURATE = "accurate"


class CompletionClient(Protocol):
    async def complete(self, model: str, system_prompt: str, user_content: str) -> str: ...


def truncate_text(text: str, max_chars: int = MAX_TEXT_CHARS) -> str:
    """Cap text at max_chars by cutting the tail"""
    if len(text) > max_chars:
        logger.info("Truncated text from %d to %d chars", len(text), max_chars)
        return text[:max_chars]
    return text


def parse_model_json(text: str) -> ExtractedDocument:
    """
    Parse the first '{' .. last '}' span of a model response.

    Raises:
        AiParseFailure: no JSON object found, invalid JSON, or wrong shape
    """
    match = _JSON_SPAN.search(text or "")
    if not match:
        raise AiParseFailure("No valid JSON in AI response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AiParseFailure("AI response contained malformed JSON", details=str(e)) from e
    if not isinstance(data, dict):
        raise AiParseFailure("AI response JSON was not an object")
    try:
        return ExtractedDocument.model_validate(data)
    except ValidationError as e:
        raise AiParseFailure("AI response did not match the record schema", details=str(e)) from e


class StructuringStage:
    """
    Sends document text to the completion service and parses the records.

    A fast-tier result that reports ``low`` confidence is re-requested once
    on the accurate tier. The accurate attempt is terminal.
    """

    def __init__(self,
                 client: CompletionClient,
                 progress: Optional[ProgressChannel] = None,
                 fast_model: str = LLM_MODEL_FAST,
                 accurate_model: str = LLM_MODEL_ACCURATE,
                 max_chars: int = MAX_TEXT_CHARS,
                 timeout: Optional[float] = LLM_TIMEOUT):
        self.client = client
        self.progress = progress if progress is not None else ProgressChannel()
        self.models = {Attempt.FAST: fast_model, Attempt.ACCURATE: accurate_model}
        self.max_chars = max_chars
        self.timeout = timeout

    async def structure(self, text: str, job_id: Optional[str] = None,
                        force_accurate: bool = False) -> ExtractedDocument:
        text = truncate_text(text, self.max_chars)
        logger.info("Structuring %d chars (job %s)", len(text), job_id)
        self.progress.emit(job_id, Stage.AI, 80, "Analyzing document with AI...", {"chars": len(text)})

        attempt = Attempt.ACCURATE if force_accurate else Attempt.FAST
        result = await self._run(attempt, text, job_id, 85)

        if attempt is Attempt.FAST and result.confidence == "low":
            logger.info("Low confidence on fast tier, escalating (job %s)", job_id)
            self.progress.emit(job_id, Stage.AI, 90, "Low confidence - re-checking with accurate model...",
                               {"model": self.models[Attempt.ACCURATE]})
            result = await self._run(Attempt.ACCURATE, text, job_id, 92)

        logger.info("Found %s (confidence %s)", result.record_counts(), result.confidence)
        self.progress.emit(job_id, Stage.AI, 95, "Results parsed", result.record_counts())
        return result

    async def _run(self, attempt: Attempt, text: str, job_id: Optional[str], percent: int) -> ExtractedDocument:
        model = self.models[attempt]
        self.progress.emit(job_id, Stage.AI, percent, "Extracting deeds, liens & judgments...",
                           {"model": model, "attempt": attempt.value})
        try:
            response = await asyncio.wait_for(
                self.client.complete(model, SYSTEM_PROMPT, text), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise AiRequestFailure(f"AI request timed out after {self.timeout:.0f}s ({model})") from e

        return parse_model_json(response)
