"""
routers/ — FastAPI route modules.

Each file holds a thin APIRouter. Business logic lives in services/;
routers validate input, call services and map errors to HTTP codes.
"""
