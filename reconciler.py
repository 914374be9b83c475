"""
=============================================================================
RECONCILER.PY — Carga y guardado de los documentos del usuario
=============================================================================
Cada usuario tiene 5 documentos JSON guardados como texto:

  habits      → lista de hábitos (BUILD / QUIT)
  data        → ledger {"YYYY-MM-DD": [ids]}
  daily_logs  → diario (opaco para nosotros)
  finance     → finanzas (opaco para nosotros)
  settings    → ajustes + estadísticas del héroe

La carga NUNCA falla. Por cada documento:
  - Ausente, vacío, "null", JSON roto o forma incorrecta → valor por defecto
  - Un solo elemento inválido invalida el documento ENTERO (todo o nada)
  - Los ajustes se mezclan con los de por defecto (un nivel de profundidad
    para heroStats), así los documentos antiguos con campos de menos siguen
    cargando.

El guardado escribe camelCase, igual que la app web, y cumple que
cargar lo que se acaba de guardar devuelve el mismo estado.
"""

import json
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

import ledger as ledger_ops
from dates import utc_now
from gamification import apply_xp
from schemas import BuildHabit, HabitListAdapter, QuitHabit, UserSettings
from store import (
    DOCUMENT_KEYS, KEY_FINANCE, KEY_HABITS, KEY_JOURNAL, KEY_SETTINGS,
    KEY_TRACKING, AppState
)

logger = logging.getLogger("habitledger.reconciler")

_MISSING = object()

TrackingAdapter = TypeAdapter(dict[date, list[str]])


# =============================================================================
# ===================== VALORES POR DEFECTO ===================================
# =============================================================================
# Los hábitos de ejemplo que ve un usuario nuevo

_DEFAULT_BUILD = [
    ("1", "Morning Workout", "Health", 5, 85, "#ef4444"),
    ("2", "Read 30 Mins", "Learning", 7, 90, "#f97316"),
    ("3", "Deep Work (2h)", "Productivity", 5, 80, "#f59e0b"),
    ("4", "No Sugar", "Health", 6, 95, "#84cc16"),
    ("5", "Meditation", "Mindfulness", 7, 100, "#10b981"),
    ("6", "Track Expenses", "Finance", 7, 90, "#06b6d4"),
]


def default_habits(now: Optional[datetime] = None) -> tuple:
    now = now or utc_now()
    habits = [
        BuildHabit(
            id=habit_id, name=name, category=category, color=color,
            goal_frequency=goal, target_consistency=target,
            daily_target=1, unit="Day",
        )
        for habit_id, name, category, goal, target, color in _DEFAULT_BUILD
    ]
    habits += [
        QuitHabit(
            id="q1", name="Quit Smoking", category="Health", color="#64748b",
            goal_frequency=0, target_consistency=0, unit="Day",
            quit_date=now - timedelta(days=5),
        ),
        QuitHabit(
            id="q2", name="Limit Fast Food", category="Health", color="#ef4444",
            goal_frequency=0, target_consistency=0, unit="Day",
            quit_date=now - timedelta(days=2, hours=12),
        ),
    ]
    return tuple(habits)


def default_settings() -> UserSettings:
    return UserSettings()


# =============================================================================
# ===================== DECODIFICACIÓN ========================================
# =============================================================================

def _reject_constant(name: str):
    raise ValueError(f"Constante JSON no válida: {name}")


def _finite_float(text: str) -> float:
    """1e400 se lee como inf: no se podría volver a guardar como JSON"""
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Número fuera de rango: {text}")
    return value


def _parse(raw: Optional[str], key: str) -> Any:
    """Texto → valor JSON, o _MISSING si no hay nada utilizable"""
    if raw is None or not raw.strip():
        return _MISSING
    try:
        value = json.loads(raw, parse_constant=_reject_constant, parse_float=_finite_float)
    except (ValueError, RecursionError) as e:
        logger.warning(f"⚠️ Documento '{key}' corrupto, se usa el valor por defecto: {e}")
        return _MISSING
    return _MISSING if value is None else value


def _wrong_shape(key: str, expected: str) -> None:
    logger.warning(f"⚠️ Documento '{key}' no es {expected}, se usa el valor por defecto")


def decode_habits(raw: Optional[str], default: tuple) -> tuple:
    value = _parse(raw, KEY_HABITS)
    if value is _MISSING:
        return default
    if not isinstance(value, list):
        _wrong_shape(KEY_HABITS, "una lista")
        return default
    try:
        return tuple(HabitListAdapter.validate_python(value))
    except ValidationError as e:
        logger.warning(f"⚠️ Hábitos inválidos ({e.error_count()} errores), se usan los de por defecto")
        return default


def decode_tracking(raw: Optional[str]) -> dict:
    value = _parse(raw, KEY_TRACKING)
    if value is _MISSING:
        return {}
    if not isinstance(value, dict):
        _wrong_shape(KEY_TRACKING, "un objeto")
        return {}
    try:
        return ledger_ops.from_lists(TrackingAdapter.validate_python(value))
    except ValidationError as e:
        logger.warning(f"⚠️ Tracking inválido ({e.error_count()} errores), se empieza vacío")
        return {}


def _merge_settings(defaults: dict, stored: Mapping[str, Any]) -> dict:
    """{...defaults, ...stored} con un nivel más para los objetos anidados"""
    merged = {**defaults, **stored}
    for key, value in defaults.items():
        if isinstance(value, dict) and isinstance(stored.get(key), dict):
            merged[key] = {**value, **stored[key]}
    return merged


def decode_settings(raw: Optional[str], default: UserSettings) -> UserSettings:
    value = _parse(raw, KEY_SETTINGS)
    if value is _MISSING:
        return default
    if not isinstance(value, dict):
        _wrong_shape(KEY_SETTINGS, "un objeto")
        return default
    try:
        settings = UserSettings.model_validate(_merge_settings(default.model_dump(by_alias=True), value))
    except ValidationError as e:
        logger.warning(f"⚠️ Ajustes inválidos ({e.error_count()} errores), se usan los de por defecto")
        return default

    # Un nivel guardado con xp >= next_level_xp se resuelve al cargar
    stats = apply_xp(settings.hero_stats, 0)
    if stats != settings.hero_stats:
        settings = settings.model_copy(update={"hero_stats": stats})
    return settings


def decode_object(raw: Optional[str], key: str) -> dict:
    """Documentos opacos (diario, finanzas): cualquier objeto JSON vale"""
    value = _parse(raw, key)
    if value is _MISSING:
        return {}
    if not isinstance(value, dict):
        _wrong_shape(key, "un objeto")
        return {}
    return value


def load_state(documents: Mapping[str, Optional[str]], now: Optional[datetime] = None) -> AppState:
    """Construye el estado a partir de los documentos guardados. Nunca lanza."""
    state = AppState(
        habits=decode_habits(documents.get(KEY_HABITS), default_habits(now)),
        tracking=decode_tracking(documents.get(KEY_TRACKING)),
        settings=decode_settings(documents.get(KEY_SETTINGS), default_settings()),
        journal=decode_object(documents.get(KEY_JOURNAL), KEY_JOURNAL),
        finance=decode_object(documents.get(KEY_FINANCE), KEY_FINANCE),
    )
    logger.debug(f"📂 Estado cargado: {len(state.habits)} hábitos, {len(state.tracking)} días con datos")
    return state


# =============================================================================
# ===================== SERIALIZACIÓN =========================================
# =============================================================================

def serialize_document(state: AppState, key: str) -> str:
    if key == KEY_HABITS:
        return HabitListAdapter.dump_json(list(state.habits), by_alias=True, exclude_none=True).decode()
    if key == KEY_TRACKING:
        return json.dumps(ledger_ops.to_lists(state.tracking))
    if key == KEY_SETTINGS:
        # Sin exclude_none: los campos extra con null tienen que volver tal cual
        return state.settings.model_dump_json(by_alias=True)
    if key == KEY_JOURNAL:
        return json.dumps(dict(state.journal))
    if key == KEY_FINANCE:
        return json.dumps(dict(state.finance))
    raise KeyError(key)


def serialize_state(state: AppState, keys: Optional[Iterable[str]] = None) -> dict[str, str]:
    """Estado → {clave: texto JSON}. Sin `keys` se serializan los 5 documentos."""
    return {key: serialize_document(state, key) for key in (keys or DOCUMENT_KEYS)}
