from fastapi import APIRouter

from app.api.evaluate import router as evaluate_router
from app.api.scrape import router as scrape_router

api_router = APIRouter(prefix="/api")
api_router.include_router(evaluate_router)
api_router.include_router(scrape_router)
