"""
=============================================================================
DATABASE.PY — Conexión a la base de datos del gateway de persistencia
=============================================================================
El núcleo (ledger, estadísticas, gamificación) nunca toca la BD.
Solo el gateway (storage.py) lee y escribe documentos aquí.

En DESARROLLO: SQLite (un archivo .db)
En PRODUCCIÓN: PostgreSQL si existe la variable de entorno DATABASE_URL.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./habitledger.db")

# Usamos psycopg (v3) como driver de PostgreSQL
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)


def build_engine(url: str):
    """
    Crea el engine. SQLite necesita check_same_thread=False porque
    FastAPI atiende peticiones síncronas desde un pool de hilos.
    """
    engine_args = {}
    if url.startswith("sqlite"):
        engine_args["connect_args"] = {"check_same_thread": False}
    return create_engine(url, echo=False, **engine_args)


engine = build_engine(DATABASE_URL)

# ─────────────────────────────────────────────────────────────────────────────
# SESSION Y BASE
# ─────────────────────────────────────────────────────────────────────────────

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    """
    Crea la tabla de documentos si no existe.
    Se llama una vez al arrancar la aplicación (y en los tests con SQLite en memoria).
    """
    import models  # noqa: F401  registra StoredDocument en Base.metadata
    Base.metadata.create_all(bind=bind or engine)
