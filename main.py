# main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.logging_config import configure_logging
from config.settings import CORS_ORIGINS
from routers.investment_routes import router as investment_router

configure_logging()

app = FastAPI(title="Portfolio Decision Core")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(investment_router, prefix="/api/investments")


@app.get("/health")
def health():
    return {"status": "ok"}
