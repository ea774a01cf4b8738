"""
System API routes for the AlgoViz backend.

Health, environment information and persisted settings.
"""

import platform
import sys
from importlib import metadata
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException

from .app_config import app_config, get_settings

router = APIRouter()

# Distribution names, as installed
PACKAGE_NAMES = ["fastapi", "uvicorn", "pydantic", "numpy", "orjson", "platformdirs"]


def _get_app_version() -> str:
    try:
        return metadata.version("algoviz-backend")
    except metadata.PackageNotFoundError:
        return "dev"


def _get_package_versions() -> Dict[str, str]:
    """Get versions of the installed runtime dependencies."""
    packages = {}
    for name in PACKAGE_NAMES:
        try:
            packages[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            pass
    return packages


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    from .sessions import session_manager

    return {
        "status": "healthy",
        "message": "AlgoViz backend is running",
        "sessions": len(session_manager.list_sessions(limit=10_000)),
    }


@router.get("/system/info")
async def system_info() -> Dict[str, Any]:
    """Get system, environment and effective settings."""
    return {
        "version": _get_app_version(),
        "python": {
            "version": sys.version,
            "platform": sys.platform,
            "executable": sys.executable,
        },
        "system": {
            "os": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "packages": _get_package_versions(),
        "settings": get_settings().to_dict(),
        "settings_path": str(app_config.settings_path),
    }


@router.put("/system/settings")
async def update_system_settings(updates: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """Merge ``updates`` into the settings and persist them; new sessions pick them up."""
    try:
        settings = app_config.update_settings(updates)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {e}")
    return settings.to_dict()
