"""
=============================================================================
MAIN.PY — La API de Habit Ledger
=============================================================================
Capa fina sobre el núcleo puro. Cada usuario (owner) tiene su HabitStore
en memoria; la primera petición lo hidrata desde la BD con el reconciler
y cada cambio aceptado se escribe de vuelta con el gateway.

Organización por secciones:
  1. ESTADO       → Documentos serializados del usuario
  2. HABITS       → CRUD de hábitos (BUILD y QUIT)
  3. TRACKING     → Marcar/desmarcar un hábito en un día
  4. STATS        → Informe, mapa de calor, mes, panel mensual, resumen
  5. QUIT         → Recaídas, fecha de inicio, contador, desencadenantes
  6. HERO         → Nivel, XP y ajustes
"""

import os
import json
import logging
import threading
import traceback
from datetime import date, datetime
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional, Union

from fastapi import FastAPI, Depends, HTTPException, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

import quit_journey
import stats
from database import init_db
from dates import utc_now
from gamification import get_level_info
from models import HeatmapScope
from reconciler import load_state, serialize_state
from schemas import (
    BuildHabit, QuitHabit, HabitListAdapter, HabitCreate, HabitUpdate,
    ToggleRequest, ToggleResponse, RelapseCreate, QuitDateUpdate,
    HabitReport, MonthStats, HabitHeatmap, QuitHeatmap, MonthlyDashboard,
    Overview, QuitReport
)
from storage import DocumentStore
from store import KEY_HABITS, AppState, HabitStore, HabitNotFoundError, HabitTypeError

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("habitledger.api")

APP_VERSION = "1.0.0"


# ─────────────────────────────────────────────────────────────────────────────
# STORES POR USUARIO
# ─────────────────────────────────────────────────────────────────────────────

class StoreRegistry:
    """
    Un HabitStore por owner, creado la primera vez que se pide.
    La hidratación lee los 5 documentos y pasa por el reconciler.
    """

    def __init__(self, documents: DocumentStore, clock: Callable[[], datetime] = utc_now):
        self.documents = documents
        self.clock = clock
        self._stores: dict[str, HabitStore] = {}
        # Dos peticiones simultáneas del mismo owner no deben hidratarlo dos veces
        self._lock = threading.Lock()

    def get(self, owner: str) -> HabitStore:
        with self._lock:
            store = self._stores.get(owner)
            if store is None:
                stored = self.documents.read_all(owner)
                state = load_state(stored, self.clock())
                if KEY_HABITS not in stored:
                    # Los QUIT de ejemplo cuentan desde la primera carga, no desde cada arranque
                    self.documents.write(owner, serialize_state(state, [KEY_HABITS]))
                store = HabitStore(state, write_back=self._write_back_for(owner), clock=self.clock)
                self._stores[owner] = store
                logger.info(f"📂 Estado de '{owner}' hidratado ({len(state.habits)} hábitos)")
        return store

    def _write_back_for(self, owner: str):
        def write_back(state: AppState, keys: frozenset) -> bool:
            return self.documents.write(owner, serialize_state(state, keys))
        return write_back


registry = StoreRegistry(DocumentStore())


def get_registry() -> StoreRegistry:
    """Dependencia de FastAPI (los tests la sustituyen por una con SQLite en memoria)"""
    return registry


def get_store(
    owner: str = Path(..., min_length=1, max_length=100),
    registry: StoreRegistry = Depends(get_registry),
) -> HabitStore:
    return registry.get(owner)


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Arrancando Habit Ledger...")
    init_db()
    logger.info("✅ Base de datos inicializada")
    yield
    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Habit Ledger API",
    description="Rachas, consistencia, hábitos QUIT y gamificación sobre un registro diario",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# ERRORES
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(HabitNotFoundError)
async def habit_not_found_handler(request: Request, exc: HabitNotFoundError):
    return JSONResponse(status_code=404, content={"detail": "Hábito no encontrado"})


@app.exception_handler(HabitTypeError)
async def habit_type_handler(request: Request, exc: HabitTypeError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados y devuelve detalles útiles"""
    error_msg = str(exc)
    error_trace = traceback.format_exc()
    logger.error(f"❌ Error no manejado en {request.url}: {error_msg}\n{error_trace}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": error_msg,
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


def _habit_json(habit) -> dict:
    """Hábito tal y como se guarda (camelCase)"""
    return HabitListAdapter.dump_python([habit], mode="json", by_alias=True, exclude_none=True)[0]


def _require(store: HabitStore, habit_id: str):
    habit = store.state.find_habit(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return habit


def _require_build(store: HabitStore, habit_id: str) -> BuildHabit:
    habit = _require(store, habit_id)
    if not isinstance(habit, BuildHabit):
        raise HabitTypeError(f"El hábito {habit_id} no es de tipo BUILD")
    return habit


def _require_quit(store: HabitStore, habit_id: str) -> QuitHabit:
    habit = _require(store, habit_id)
    if not isinstance(habit, QuitHabit):
        raise HabitTypeError(f"El hábito {habit_id} no es de tipo QUIT")
    return habit


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check():
    """Verifica que la API está viva"""
    return {
        "status": "ok",
        "app": "Habit Ledger",
        "version": APP_VERSION,
        "timestamp": utc_now().isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: ESTADO =====================================
# =============================================================================

@app.get("/users/{owner}/state", tags=["State"])
def get_state(store: HabitStore = Depends(get_store)):
    """Los 5 documentos del usuario, en el mismo formato en que se guardan"""
    return {key: json.loads(text) for key, text in serialize_state(store.state).items()}


# =============================================================================
# ===================== SECCIÓN 2: HABITS =====================================
# =============================================================================

@app.get("/users/{owner}/habits", tags=["Habits"])
def list_habits(store: HabitStore = Depends(get_store)):
    return [_habit_json(h) for h in store.state.habits]


@app.post("/users/{owner}/habits", status_code=status.HTTP_201_CREATED, tags=["Habits"])
def create_habit(data: HabitCreate, store: HabitStore = Depends(get_store)):
    """Crea un hábito BUILD o QUIT (un QUIT sin fecha empieza ahora)"""
    try:
        habit = store.create_habit(data)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _habit_json(habit)


@app.patch("/users/{owner}/habits/{habit_id}", tags=["Habits"])
def update_habit(habit_id: str, data: HabitUpdate, store: HabitStore = Depends(get_store)):
    """Edita un hábito. Cambiar `type` convierte el hábito y descarta los campos de la otra variante."""
    try:
        habit = store.update_habit(habit_id, data)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))
    return _habit_json(habit)


@app.delete("/users/{owner}/habits/{habit_id}", tags=["Habits"])
def delete_habit(habit_id: str, store: HabitStore = Depends(get_store)):
    habit = store.delete_habit(habit_id)
    return {"message": f"Hábito '{habit.name}' eliminado"}


# =============================================================================
# ===================== SECCIÓN 3: TRACKING ===================================
# =============================================================================

@app.post("/users/{owner}/tracking/toggle", response_model=ToggleResponse, tags=["Tracking"])
def toggle_habit(data: ToggleRequest, store: HabitStore = Depends(get_store)):
    """
    Marca o desmarca un hábito BUILD en un día (un QUIT responde 422).
    En modo HERO, los hábitos BUILD suman o restan 15 XP.
    """
    _require_build(store, data.habit_id)
    result = store.toggle_habit(data.habit_id, data.date)
    return ToggleResponse(
        habit_id=result.habit_id,
        date=result.date,
        completed=result.completed,
        xp_delta=result.xp_delta,
        leveled_up=result.leveled_up,
        hero_stats=store.state.settings.hero_stats,
    )


# =============================================================================
# ===================== SECCIÓN 4: STATS ======================================
# =============================================================================

@app.get("/users/{owner}/habits/{habit_id}/stats", response_model=HabitReport, tags=["Stats"])
def habit_stats(habit_id: str, store: HabitStore = Depends(get_store)):
    habit = _require_build(store, habit_id)
    return stats.habit_report(habit, store.state.tracking, store.today())


@app.get(
    "/users/{owner}/habits/{habit_id}/heatmap",
    response_model=Union[HabitHeatmap, QuitHeatmap],
    tags=["Stats"],
)
def habit_heatmap(
    habit_id: str,
    scope: HeatmapScope = HeatmapScope.month,
    anchor: Optional[date] = None,
    store: HabitStore = Depends(get_store),
):
    """
    BUILD → semana / mes / año alrededor de `anchor` (por defecto hoy).
    QUIT  → un día por celda desde el inicio del viaje (el scope no aplica).
    """
    habit = _require(store, habit_id)
    today = store.today()
    if isinstance(habit, QuitHabit):
        return quit_journey.heatmap(habit, today, store.timezone)
    return stats.habit_heatmap(
        habit, store.state.tracking, scope, anchor or today, today,
        store.state.settings.week_starts_on,
    )


@app.get("/users/{owner}/habits/{habit_id}/month", response_model=MonthStats, tags=["Stats"])
def habit_month(
    habit_id: str,
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    store: HabitStore = Depends(get_store),
):
    habit = _require_build(store, habit_id)
    today = store.today()
    return stats.month_stats(habit, store.state.tracking, year or today.year, month or today.month)


@app.get("/users/{owner}/dashboard/month", response_model=MonthlyDashboard, tags=["Stats"])
def monthly_dashboard(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    store: HabitStore = Depends(get_store),
):
    """Panel del mes: tendencia diaria, ranking de hábitos y nota"""
    today = store.today()
    return stats.monthly_dashboard(
        store.state.build_habits, store.state.tracking, year or today.year, month or today.month
    )


@app.get("/users/{owner}/dashboard/overview", response_model=Overview, tags=["Stats"])
def dashboard_overview(store: HabitStore = Depends(get_store)):
    return stats.overview(store.state.build_habits, store.state.tracking, store.today())


# =============================================================================
# ===================== SECCIÓN 5: QUIT =======================================
# =============================================================================

@app.get("/users/{owner}/habits/{habit_id}/quit", response_model=QuitReport, tags=["Quit"])
def quit_status(habit_id: str, store: HabitStore = Depends(get_store)):
    """Contador de tiempo limpio, ahorro, hitos e historial reciente"""
    habit = _require_quit(store, habit_id)
    return quit_journey.quit_report(habit, store.now())


@app.post(
    "/users/{owner}/habits/{habit_id}/relapse",
    response_model=QuitReport,
    status_code=status.HTTP_201_CREATED,
    tags=["Quit"],
)
def log_relapse(habit_id: str, data: RelapseCreate, store: HabitStore = Depends(get_store)):
    """
    Registra una recaída (por defecto "ahora") y reinicia la racha limpia.
    Una fecha futura se acota a ahora.
    """
    habit = store.log_relapse(habit_id, data.date, data.trigger)
    return quit_journey.quit_report(habit, store.now())


@app.patch("/users/{owner}/habits/{habit_id}/quit-date", response_model=QuitReport, tags=["Quit"])
def reset_quit_date(habit_id: str, data: QuitDateUpdate, store: HabitStore = Depends(get_store)):
    habit = store.reset_quit_date(habit_id, data.quit_date)
    return quit_journey.quit_report(habit, store.now())


@app.get("/users/{owner}/quit/triggers", tags=["Quit"])
def quit_triggers(store: HabitStore = Depends(get_store)):
    """Opciones de desencadenante y recuento por hábito QUIT"""
    return {
        "options": quit_journey.TRIGGER_OPTIONS,
        "habits": {
            habit.id: [t.model_dump() for t in quit_journey.trigger_breakdown(habit)]
            for habit in store.state.quit_habits
        },
    }


# =============================================================================
# ===================== SECCIÓN 6: HERO =======================================
# =============================================================================

@app.get("/users/{owner}/hero", tags=["Hero"])
def hero_status(store: HabitStore = Depends(get_store)):
    settings = store.state.settings
    return {"mode": settings.mode, **get_level_info(settings.hero_stats)}


@app.patch("/users/{owner}/settings", tags=["Hero"])
def update_settings(changes: dict[str, Any], store: HabitStore = Depends(get_store)):
    """Cambio parcial de ajustes (claves camelCase). Los objetos anidados se mezclan."""
    try:
        settings = store.update_settings(changes)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))
    return settings.model_dump(mode="json", by_alias=True)
