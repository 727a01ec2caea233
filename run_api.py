#!/usr/bin/env python3
"""
Script to run the FastAPI application.
"""

import logging
import os

import uvicorn

logging.basicConfig(level=logging.INFO)

# Run the FastAPI application
if __name__ == "__main__":
    uvicorn.run(
        "healthchain.api:create_app",
        factory=True,
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=os.getenv("API_RELOAD", "").lower() in ("1", "true", "yes"),
    )
