from __future__ import annotations
import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

load_dotenv()

def build_db_url(config: dict | None = None) -> str:
    db = (config or {}).get("database") or {}
    if db.get("url"):
        return db["url"]
    host = db.get("host") or os.getenv("DB_HOST", "localhost")
    port = db.get("port") or os.getenv("DB_PORT", "5432")
    name = db.get("name") or os.getenv("DB_NAME", "timetrack")
    user = db.get("user") or os.getenv("DB_USER", "timetrack")
    pwd = db.get("password") or os.getenv("DB_PASSWORD", "timetrack")
    return f"postgresql+psycopg://{user}:{pwd}@{host}:{port}/{name}"

def get_engine(config: dict | None = None) -> Engine:
    return create_engine(build_db_url(config), future=True)
