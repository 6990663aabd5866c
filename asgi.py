"""
asgi.py -- Application assembly for Storekeep.

Joins the API (api/main.py) with the static mount that serves uploaded
images under /image. api/main.py knows nothing about where uploads live on
disk beyond Settings.upload_dir.

Run with:  uvicorn asgi:app --reload
"""

from fastapi.staticfiles import StaticFiles

from api.main import app
from core.config import get_settings

# check_dir=False: the directory is created on the first upload.
app.mount("/image", StaticFiles(directory=get_settings().upload_dir, check_dir=False), name="image")
