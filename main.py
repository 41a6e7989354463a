"""
Main entry point for the gallery service.
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "gallery.app.api:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )
