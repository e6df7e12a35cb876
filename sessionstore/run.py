#!/usr/bin/env python3
"""Run the session store application"""
import uvicorn

from sessionstore.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "sessionstore.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEV_MODE,
        log_level="debug" if settings.DEV_MODE else "info",
    )
