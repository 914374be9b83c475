"""
=============================================================================
STORE.PY — Contenedor explícito del estado del usuario
=============================================================================
El estado de un usuario (hábitos, tracking, ajustes) vive en un solo sitio
y cada cambio pasa por una transición explícita:

  AppState    → foto INMUTABLE del estado en un momento dado
  HabitStore  → guarda la foto actual y expone las transiciones

Cada transición:
  1. Calcula una foto nueva (funciones puras: ledger, quit_journey, gamification)
  2. La acepta (sustituye a la anterior)
  3. Llama al hook de escritura (write_back) con las claves que cambiaron

Si la escritura falla (BD caída, cuota...), se registra en el log y la foto
en memoria se MANTIENE: en la sesión actual manda la memoria, persistir es
"best effort".

FastAPI ejecuta los endpoints síncronos en un pool de hilos, así que cada
transición (leer foto → calcular → aceptar → escribir) va bajo un lock.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Mapping, Optional

import gamification
import ledger as ledger_ops
import quit_journey
from dates import ensure_aware, get_timezone, local_today, utc_now
from models import HabitKind
from schemas import (
    VARIANT_FIELDS, BuildHabit, Habit, HabitAdapter, HabitCreate, HabitUpdate,
    QuitHabit, UserSettings
)

logger = logging.getLogger("habitledger.store")

KEY_HABITS = "habits"
KEY_TRACKING = "data"
KEY_JOURNAL = "daily_logs"
KEY_FINANCE = "finance"
KEY_SETTINGS = "settings"

DOCUMENT_KEYS = (KEY_HABITS, KEY_TRACKING, KEY_JOURNAL, KEY_FINANCE, KEY_SETTINGS)

WriteBack = Callable[["AppState", frozenset], bool]


# =============================================================================
# ===================== ERRORES DEL DOMINIO ===================================
# =============================================================================

class HabitNotFoundError(LookupError):
    """La operación necesita un hábito que no existe"""


class HabitTypeError(ValueError):
    """La operación no aplica a este tipo de hábito (p. ej. recaída en un BUILD)"""


# =============================================================================
# ===================== FOTO DEL ESTADO =======================================
# =============================================================================

@dataclass(frozen=True)
class AppState:
    habits: tuple = ()
    tracking: Mapping[date, frozenset] = field(default_factory=dict)
    settings: UserSettings = field(default_factory=UserSettings)
    journal: Mapping[str, Any] = field(default_factory=dict)
    finance: Mapping[str, Any] = field(default_factory=dict)

    def find_habit(self, habit_id: str) -> Optional[Habit]:
        return next((h for h in self.habits if h.id == habit_id), None)

    @property
    def build_habits(self) -> list[BuildHabit]:
        return [h for h in self.habits if isinstance(h, BuildHabit)]

    @property
    def quit_habits(self) -> list[QuitHabit]:
        return [h for h in self.habits if isinstance(h, QuitHabit)]


@dataclass(frozen=True)
class ToggleResult:
    habit_id: str
    date: date
    completed: bool
    xp_delta: int
    leveled_up: bool


# =============================================================================
# ===================== CONSTRUCCIÓN DE HÁBITOS ===============================
# =============================================================================

def build_habit(data: HabitCreate, now: datetime) -> Habit:
    """
    Crea un hábito de la variante pedida con los datos del formulario.
    Un QUIT sin fecha empieza "ahora"; una fecha futura se acota a ahora.
    """
    payload = data.model_dump(exclude_none=True)
    payload["id"] = data.id or str(uuid.uuid4())
    kind = HabitKind(payload.pop("type"))
    for name in VARIANT_FIELDS[_other(kind)]:
        payload.pop(name, None)
    payload["type"] = kind.value
    if kind == HabitKind.quit:
        quit_date = ensure_aware(data.quit_date) if data.quit_date else now
        payload["quit_date"] = min(quit_date, now)
    return HabitAdapter.validate_python(payload)


def edit_habit(habit: Habit, changes: HabitUpdate, now: datetime) -> Habit:
    """
    Aplica una edición. Si cambia la variante (BUILD ↔ QUIT), los campos
    de la variante anterior se descartan y los de la nueva toman sus
    valores por defecto (un QUIT nuevo empieza "ahora").
    Un null explícito borra los campos opcionales (descripción, unidad...).
    """
    update = changes.model_dump(exclude_unset=True)
    kind = HabitKind(update.pop("type", None) or habit.type)

    payload = habit.model_dump()
    payload.update(update)
    for name in VARIANT_FIELDS[_other(kind)]:
        payload.pop(name, None)
    payload["type"] = kind.value
    if kind == HabitKind.quit and not payload.get("quit_date"):
        payload["quit_date"] = now
    return HabitAdapter.validate_python(payload)


def _other(kind: HabitKind) -> HabitKind:
    return HabitKind.quit if kind == HabitKind.build else HabitKind.build


# =============================================================================
# ===================== STORE =================================================
# =============================================================================

class HabitStore:
    """
    Dueño de la foto actual de UN usuario.
    Un solo escritor: el lock garantiza que cada transición termina antes
    de que empiece la siguiente.
    """

    def __init__(self, state: AppState, write_back: Optional[WriteBack] = None,
                 clock: Callable[[], datetime] = utc_now):
        self._state = state
        self._lock = threading.Lock()
        self._write_back = write_back
        self._clock = clock

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def timezone(self):
        return get_timezone(self._state.settings.timezone)

    def now(self) -> datetime:
        return ensure_aware(self._clock())

    def today(self) -> date:
        return local_today(self._state.settings.timezone, self.now())

    def _commit(self, new_state: AppState, changed: set) -> None:
        """Acepta la foto nueva y DESPUÉS intenta persistirla"""
        self._state = new_state
        if self._write_back is None:
            return
        try:
            ok = self._write_back(new_state, frozenset(changed))
        except Exception as e:
            logger.error(f"❌ Error guardando {sorted(changed)}: {e}")
            return
        if not ok:
            logger.warning(f"⚠️ No se pudo guardar {sorted(changed)}; el estado en memoria se mantiene")

    def _require(self, habit_id: str) -> Habit:
        habit = self._state.find_habit(habit_id)
        if habit is None:
            raise HabitNotFoundError(habit_id)
        return habit

    def _replace_habit(self, updated: Habit) -> tuple:
        return tuple(updated if h.id == updated.id else h for h in self._state.habits)

    # ── Tracking ──

    def toggle_habit(self, habit_id: str, day: date) -> ToggleResult:
        """
        Marca/desmarca un hábito en un día.
        El ledger no valida ids; el XP solo se mueve para hábitos BUILD conocidos.
        """
        with self._lock:
            state = self._state
            became_completed = not ledger_ops.is_complete(state.tracking, habit_id, day)
            tracking = ledger_ops.toggle(state.tracking, habit_id, day)
            changed = {KEY_TRACKING}

            settings, delta, leveled_up = state.settings, 0, False
            if isinstance(state.find_habit(habit_id), BuildHabit):
                settings, delta, leveled_up = gamification.on_habit_toggled(state.settings, became_completed)
                if delta:
                    changed.add(KEY_SETTINGS)

            self._commit(replace(state, tracking=tracking, settings=settings), changed)
        return ToggleResult(habit_id, day, became_completed, delta, leveled_up)

    # ── Hábitos QUIT ──

    def log_relapse(self, habit_id: str, when: Optional[datetime] = None,
                    trigger: Optional[str] = None) -> QuitHabit:
        with self._lock:
            habit = self._require(habit_id)
            if not isinstance(habit, QuitHabit):
                raise HabitTypeError(f"El hábito {habit_id} no es de tipo QUIT")

            now = self.now()
            when = min(ensure_aware(when), now) if when else now
            updated = quit_journey.log_relapse(habit, when, trigger)
            self._commit(replace(self._state, habits=self._replace_habit(updated)), {KEY_HABITS})
        logger.info(f"💥 Recaída registrada en '{habit.name}' (trigger: {trigger or '-'})")
        return updated

    def reset_quit_date(self, habit_id: str, when: datetime) -> QuitHabit:
        with self._lock:
            habit = self._require(habit_id)
            if not isinstance(habit, QuitHabit):
                raise HabitTypeError(f"El hábito {habit_id} no es de tipo QUIT")

            updated = quit_journey.reset_quit_date(habit, when, self.now())
            self._commit(replace(self._state, habits=self._replace_habit(updated)), {KEY_HABITS})
        return updated

    # ── CRUD de hábitos ──

    def create_habit(self, data: HabitCreate) -> Habit:
        with self._lock:
            habit = build_habit(data, self.now())
            if self._state.find_habit(habit.id) is not None:
                raise ValueError(f"Ya existe un hábito con id {habit.id}")
            self._commit(replace(self._state, habits=self._state.habits + (habit,)), {KEY_HABITS})
        logger.info(f"➕ Hábito creado: {habit.name} ({habit.type})")
        return habit

    def update_habit(self, habit_id: str, changes: HabitUpdate) -> Habit:
        with self._lock:
            updated = edit_habit(self._require(habit_id), changes, self.now())
            self._commit(replace(self._state, habits=self._replace_habit(updated)), {KEY_HABITS})
        return updated

    def delete_habit(self, habit_id: str) -> Habit:
        """Borra el hábito. El tracking NO se toca: sus ids quedan colgando."""
        with self._lock:
            habit = self._require(habit_id)
            habits = tuple(h for h in self._state.habits if h.id != habit_id)
            self._commit(replace(self._state, habits=habits), {KEY_HABITS})
        logger.info(f"🗑️ Hábito eliminado: {habit.name}")
        return habit

    # ── Ajustes ──

    def update_settings(self, changes: Mapping[str, Any]) -> UserSettings:
        """
        Mezcla parcial de ajustes (claves camelCase, como en el documento guardado).
        Lanza ValidationError si el resultado no es válido.
        """
        with self._lock:
            payload = self._state.settings.model_dump(by_alias=True)
            for key, value in changes.items():
                if isinstance(value, dict) and isinstance(payload.get(key), dict):
                    payload[key] = {**payload[key], **value}
                else:
                    payload[key] = value
            settings = UserSettings.model_validate(payload)
            settings = settings.model_copy(update={"hero_stats": gamification.apply_xp(settings.hero_stats, 0)})
            self._commit(replace(self._state, settings=settings), {KEY_SETTINGS})
        return settings
