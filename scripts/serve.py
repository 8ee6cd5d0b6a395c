"""
Dashgate - Development Server

Runs the auth service with uvicorn using HOST/PORT/LOG_LEVEL from settings.

Usage:
    python -m scripts.serve [--reload]
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from dashgate.config import settings


def main():
    reload = "--reload" in sys.argv[1:]
    uvicorn.run(
        "dashgate.app:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=reload,
    )


if __name__ == "__main__":
    main()
