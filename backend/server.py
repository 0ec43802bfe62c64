from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

from database import engine, get_db, Base
from bootstrap import ensure_default_admin
import change_feed  # noqa: F401  registers the session hooks
from routers import admin_manage, admin_requests, member, public, realtime

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

app = FastAPI(title="Participation Leaderboard API", version="1.0.0")
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    Base.metadata.create_all(bind=engine)
    db = next(get_db())
    try:
        ensure_default_admin(db)
    finally:
        db.close()
    logger.info("Leaderboard API started")


api_router.include_router(public.router)
api_router.include_router(member.router)
api_router.include_router(admin_requests.router)
api_router.include_router(admin_manage.router)
api_router.include_router(realtime.router)

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
