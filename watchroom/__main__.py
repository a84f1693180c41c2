"""
Watchroom — Application entry point.

Run with:  python -m watchroom
           uvicorn watchroom.main:app --reload
"""

import uvicorn
from watchroom.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "watchroom.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level,
    )
