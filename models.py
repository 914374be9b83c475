"""
=============================================================================
MODELS.PY — Tipos del dominio y tabla de almacenamiento
=============================================================================
Dos cosas viven aquí:

  1. ENUMS del dominio (tipo de hábito, modo de juego, notas, estados...)
     Los usan los motores puros y los esquemas Pydantic.

  2. La tabla de la BD donde se guardan los documentos JSON del usuario.
     El núcleo NO conoce esta tabla: solo el gateway (storage.py) la toca.

  USER (owner)
  ├── habits       → lista de hábitos (BUILD y QUIT, con su historial)
  ├── data         → ledger fecha → ids completados
  ├── daily_logs   → diario (opaco para este núcleo)
  ├── finance      → finanzas (opaco para este núcleo)
  └── settings     → modo, cronotipo, heroStats...
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint
from database import Base
import enum


# =============================================================================
# ===================== ENUMS (Tipos predefinidos) ============================
# =============================================================================

class HabitKind(str, enum.Enum):
    """Discriminante del hábito"""
    build = "BUILD"    # Hábito a construir (se marca cada día)
    quit = "QUIT"      # Conducta a abandonar (se mide el tiempo limpio)


class TrackingType(str, enum.Enum):
    """Cómo se registra un hábito BUILD"""
    boolean = "BOOLEAN"  # ¿Lo hiciste? Sí/No
    count = "COUNT"      # Con objetivo diario (dailyTarget)


class AppMode(str, enum.Enum):
    """Modo de la app"""
    zen = "ZEN"      # Sin gamificación
    hero = "HERO"    # XP y niveles activos


class Chronotype(str, enum.Enum):
    lion = "LION"
    bear = "BEAR"
    wolf = "WOLF"
    dolphin = "DOLPHIN"


class WeekStart(str, enum.Enum):
    sunday = "SUNDAY"
    monday = "MONDAY"


class Grade(str, enum.Enum):
    """Nota según la consistencia"""
    a = "A"   # >= 90
    b = "B"   # >= 80
    c = "C"   # >= 60
    d = "D"   # >= 40
    f = "F"


class TrackStatus(str, enum.Enum):
    on_track = "ON_TRACK"
    off_track = "OFF_TRACK"


class Recommendation(str, enum.Enum):
    """Clasificación a tres bandas; el texto lo pone la interfaz"""
    needs_focus = "NEEDS_FOCUS"   # < 50
    building = "BUILDING"         # < 80
    excellent = "EXCELLENT"       # >= 80


class HeatCell(str, enum.Enum):
    """Celda del mapa de calor de un hábito QUIT"""
    success = "SUCCESS"
    relapse = "RELAPSE"


class HeatmapScope(str, enum.Enum):
    week = "WEEK"
    month = "MONTH"
    year = "YEAR"


# =============================================================================
# ===================== TABLA: STORED_DOCUMENTS ===============================
# =============================================================================
# Almacén clave-valor. Un documento JSON por colección lógica y usuario.
# El payload se guarda TAL CUAL (texto), aunque esté corrupto: reparar es
# trabajo del reconciler al cargar, no del almacén.

class StoredDocument(Base):
    __tablename__ = "stored_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String(100), nullable=False, index=True)
    # owner → identidad del usuario activo (espacio de nombres)
    key = Column(String(50), nullable=False)
    # key → "habits", "data", "daily_logs", "finance", "settings"
    payload = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # ── Restricción única: un documento por usuario y clave ──
    __table_args__ = (
        UniqueConstraint('owner', 'key', name='uq_owner_key'),
    )
