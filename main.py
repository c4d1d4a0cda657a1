"""
Entry point for deployment.
Imports the FastAPI app from the app module.
"""

from app.main import app
from app.config import settings

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())
