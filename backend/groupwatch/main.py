from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from groupwatch.core.config import settings
from groupwatch.core.database import SessionLocal, init_db
from groupwatch.utils.logger import logger
from groupwatch.utils.timezone import utc_now
from groupwatch.api import groups, progress, watchlist


app = FastAPI(title="GroupWatch API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(groups.router, prefix="/api/groups", tags=["Groups"])
app.include_router(progress.router, prefix="/api/progress", tags=["Progress"])
app.include_router(watchlist.router, prefix="/api/watchlist", tags=["Watchlist"])


@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("GroupWatch API started")

@app.get("/")
def root():
    return {"status": "GroupWatch API Running"}

@app.get("/health")
def health_check():
    """Simple health check endpoint for load balancers/monitoring"""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "timestamp": utc_now().isoformat()}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")
    finally:
        db.close()
