#!/usr/bin/env python3
"""Simple script to run the Title Extractor API"""
import uvicorn

from title_extractor.config import API_HOST, API_PORT
from title_extractor.logging_config import setup_logging

if __name__ == "__main__":
    setup_logging()
    uvicorn.run("title_extractor.api:app", host=API_HOST, port=API_PORT, reload=True)
