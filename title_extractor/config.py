"""Configuration settings for the title extractor"""
import os
import tempfile
from dotenv import load_dotenv

load_dotenv()

# LLM Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")  # None -> default OpenAI endpoint
LLM_MODEL_FAST = os.getenv("LLM_MODEL_FAST", "gpt-4o-mini")  # Default tier
LLM_MODEL_ACCURATE = os.getenv("LLM_MODEL_ACCURATE", "gpt-4o")  # Escalation tier
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "8000"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "300"))  # seconds per completion request

# AI structuring input cap (characters, truncated not summarized)
MAX_TEXT_CHARS = 180_000

# PDF text layer: more than this many trimmed chars means a digital PDF
DIGITAL_TEXT_THRESHOLD = 100

# Rasterization of scanned pages (A4 at 300 DPI)
RASTER_DPI = 300
RASTER_WIDTH = 2480
RASTER_HEIGHT = 3508

# OCR configuration
OCR_LANGUAGE = os.getenv("OCR_LANGUAGE", "eng")
OCR_PSM = int(os.getenv("OCR_PSM", "3"))  # Page segmentation mode 3: fully automatic
OCR_TIMEOUT = float(os.getenv("OCR_TIMEOUT", "120"))  # seconds per image
OCR_PAGE_CONCURRENCY = int(os.getenv("OCR_PAGE_CONCURRENCY", "1"))  # 1 = sequential pages

# Working directories
TEMP_DIR = os.getenv("TITLE_EXTRACTOR_TEMP_DIR", os.path.join(tempfile.gettempdir(), "title_extractor"))
UPLOAD_DIR = os.getenv("TITLE_EXTRACTOR_UPLOAD_DIR", os.path.join(TEMP_DIR, "uploads"))
MAX_UPLOAD_BYTES = 100 * 1024 * 1024

# Job retention
MAX_JOBS = int(os.getenv("MAX_JOBS", "500"))
JOB_TTL_SECONDS = float(os.getenv("JOB_TTL_SECONDS", str(24 * 3600)))

# API server
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("PORT", "8000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
