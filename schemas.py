"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
Dos familias de esquemas:

  1. DOCUMENTOS persistidos (Habit, RelapseRecord, HeroStats, UserSettings)
     → Se guardan en JSON con nombres camelCase ("quitDate", "heroStats"),
       igual que los genera la app web. En Python usamos snake_case
       gracias al alias_generator.
     → Son inmutables (frozen): para cambiar algo se crea una copia
       con model_copy(update=...).

  2. API (XxxCreate, XxxUpdate, XxxResponse)
     → Lo que acepta y devuelve la API REST, en snake_case.

El hábito es una UNIÓN ETIQUETADA:
  {"type": "BUILD", "trackingType": "BOOLEAN", "dailyTarget": 1, ...}
  {"type": "QUIT", "quitDate": "...", "quitHistory": [...], ...}
Un hábito BUILD no puede llevar quitDate y uno QUIT no puede llevar
dailyTarget: los campos de la otra variante se descartan al validar.
Los registros antiguos sin "type" se leen como BUILD.
"""

from datetime import date, datetime
from typing import Annotated, Any, Optional, Union, Literal

from pydantic import BaseModel, Discriminator, Field, Tag, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from dates import ensure_aware
from models import (
    HabitKind, TrackingType, AppMode, Chronotype, WeekStart,
    Grade, TrackStatus, Recommendation, HeatCell, HeatmapScope
)


HABIT_COLORS = [
    '#ef4444', '#f97316', '#f59e0b', '#84cc16',
    '#10b981', '#06b6d4', '#3b82f6', '#6366f1',
    '#8b5cf6', '#d946ef', '#f43f5e', '#ec4899',
    '#c026d3', '#7c3aed', '#4f46e5', '#2563eb',
    '#0891b2', '#059669', '#65a30d', '#ca8a04',
]

# Campos propios de cada variante (nombres Python)
VARIANT_FIELDS = {
    HabitKind.build: {"tracking_type", "daily_target", "streak_goal"},
    HabitKind.quit: {"quit_date", "original_quit_date", "quit_cost_per_day", "quit_history"},
}


class DocumentModel(BaseModel):
    """Base de todo lo que se persiste: camelCase en JSON, inmutable en memoria"""
    model_config = {"alias_generator": to_camel, "populate_by_name": True, "frozen": True}


# =============================================================================
# ===================== HÁBITOS ===============================================
# =============================================================================

class RelapseRecord(DocumentModel):
    """Una recaída. Hecho histórico: no se modifica nunca."""
    date: datetime
    duration_seconds: int = Field(ge=0)
    trigger: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)


class HabitBase(DocumentModel):
    id: str = Field(min_length=1)
    name: str
    category: str = "Other"
    color: str = HABIT_COLORS[7]
    goal_frequency: int = Field(default=7, ge=0, le=7)
    # goal_frequency → días objetivo por semana
    target_consistency: int = Field(default=100, ge=0, le=100)
    # target_consistency → % de consistencia que el usuario quiere alcanzar
    description: Optional[str] = None
    unit: Optional[str] = None


class BuildHabit(HabitBase):
    type: Literal["BUILD"] = "BUILD"
    tracking_type: TrackingType = TrackingType.boolean
    daily_target: float = Field(default=1, gt=0)
    # daily_target → solo tiene sentido con tracking_type COUNT
    streak_goal: int = Field(default=0, ge=0)
    # streak_goal → 0 = sin objetivo de racha

    @property
    def kind(self) -> HabitKind:
        return HabitKind.build


class QuitHabit(HabitBase):
    type: Literal["QUIT"] = "QUIT"
    quit_date: datetime
    # quit_date → inicio de la racha limpia ACTUAL (se mueve en cada recaída)
    original_quit_date: Optional[datetime] = None
    # original_quit_date → primer intento; se fija en la primera recaída y no cambia
    quit_cost_per_day: Optional[float] = Field(default=None, ge=0)
    quit_history: tuple[RelapseRecord, ...] = ()
    # quit_history → recaídas, la más reciente primero

    @field_validator("quit_date", "original_quit_date")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value) if value is not None else None

    @property
    def kind(self) -> HabitKind:
        return HabitKind.quit


def _habit_kind(value: Any) -> Any:
    """Discriminante: sin "type" → BUILD (esquema antiguo)"""
    if isinstance(value, dict):
        return value.get("type") or HabitKind.build.value
    return getattr(value, "type", HabitKind.build.value)


Habit = Annotated[
    Union[
        Annotated[BuildHabit, Tag("BUILD")],
        Annotated[QuitHabit, Tag("QUIT")],
    ],
    Discriminator(_habit_kind),
]

HabitAdapter = TypeAdapter(Habit)
HabitListAdapter = TypeAdapter(list[Habit])


# =============================================================================
# ===================== GAMIFICACIÓN Y AJUSTES ================================
# =============================================================================

# Topes de XP: un documento con cifras gigantes es corrupto (el while de
# niveles acabaría en float infinito)
MAX_XP = 10**9
MAX_NEXT_LEVEL_XP = 10**10


class HeroStats(DocumentModel):
    hp: int = Field(default=100, ge=0)
    max_hp: int = Field(default=100, ge=0)
    xp: int = Field(default=0, ge=0, le=MAX_XP)
    level: int = Field(default=1, ge=1)
    next_level_xp: int = Field(default=500, ge=1, le=MAX_NEXT_LEVEL_XP)


class UserSettings(DocumentModel):
    """
    Ajustes del usuario. Los campos de presentación que no conocemos
    (extra="allow") viajan en el mismo documento sin tocarse.
    """
    model_config = {"extra": "allow"}

    deep_work_interval: int = 90
    mode: AppMode = AppMode.hero
    chronotype: Chronotype = Chronotype.bear
    hero_stats: HeroStats = Field(default_factory=HeroStats)
    user_name: Optional[str] = None
    theme: Optional[str] = None
    timezone: Optional[str] = None
    time_format: Optional[str] = None
    week_starts_on: WeekStart = WeekStart.sunday
    notes_pin: Optional[str] = None


# =============================================================================
# ===================== API: HÁBITOS ==========================================
# =============================================================================

class HabitCreate(BaseModel):
    id: Optional[str] = None
    type: HabitKind = HabitKind.build
    name: str = Field(min_length=1, max_length=100)
    category: str = "Health"
    color: str = HABIT_COLORS[0]
    description: Optional[str] = None
    goal_frequency: int = Field(default=7, ge=0, le=7)
    target_consistency: int = Field(default=100, ge=0, le=100)
    unit: Optional[str] = "Day"
    # BUILD
    tracking_type: TrackingType = TrackingType.boolean
    daily_target: float = Field(default=1, gt=0)
    streak_goal: int = Field(default=0, ge=0)
    # QUIT
    quit_date: Optional[datetime] = None
    quit_cost_per_day: Optional[float] = Field(default=None, ge=0)


class HabitUpdate(BaseModel):
    type: Optional[HabitKind] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None
    goal_frequency: Optional[int] = Field(default=None, ge=0, le=7)
    target_consistency: Optional[int] = Field(default=None, ge=0, le=100)
    unit: Optional[str] = None
    tracking_type: Optional[TrackingType] = None
    daily_target: Optional[float] = Field(default=None, gt=0)
    streak_goal: Optional[int] = Field(default=None, ge=0)
    quit_cost_per_day: Optional[float] = Field(default=None, ge=0)


# =============================================================================
# ===================== API: TRACKING Y RECAÍDAS ==============================
# =============================================================================

class ToggleRequest(BaseModel):
    habit_id: str
    date: date


class ToggleResponse(BaseModel):
    habit_id: str
    date: date
    completed: bool
    xp_delta: int
    leveled_up: bool
    hero_stats: HeroStats


class RelapseCreate(BaseModel):
    date: Optional[datetime] = None
    # date → si no se envía, la recaída es "ahora"
    trigger: Optional[str] = None


class QuitDateUpdate(BaseModel):
    quit_date: datetime


# =============================================================================
# ===================== INFORMES (respuestas calculadas) ======================
# =============================================================================

class HabitReport(BaseModel):
    """Estadísticas de un hábito BUILD en la ventana móvil de 30 días"""
    habit_id: str
    name: str
    window_days: int
    completions_in_window: int
    current_consistency: int
    yearly_avg: int
    target_consistency: int
    gap: int
    status: TrackStatus
    grade: Grade
    best_month: str
    best_month_completions: int
    recommendation: Recommendation
    live_streak: int
    longest_streak: int
    streak_goal: int


class MonthStats(BaseModel):
    habit_id: str
    year: int
    month: int
    completions: int
    consistency: int
    best_streak: int


class HeatmapDay(BaseModel):
    date: date
    done: bool
    future: bool


class HabitHeatmap(BaseModel):
    habit_id: str
    scope: HeatmapScope
    start: date
    end: date
    leading_blanks: int
    # leading_blanks → huecos antes del primer día para alinear la cuadrícula
    completed_days: int
    total_days: int
    percentage: int
    days: list[HeatmapDay]


class DailyTrend(BaseModel):
    day: int
    completed: int
    percentage: int


class HabitPerformance(BaseModel):
    habit_id: str
    name: str
    color: str
    category: str
    target_consistency: int
    completions: int
    rate: int
    gap: int


class MonthlyDashboard(BaseModel):
    year: int
    month: int
    trend: list[DailyTrend]
    performance: list[HabitPerformance]
    total_completions: int
    average_consistency: int
    grade: Grade
    top_performer: Optional[HabitPerformance] = None
    worst_performer: Optional[HabitPerformance] = None


class Overview(BaseModel):
    date: date
    habits: list[HabitReport]
    average_consistency: int
    on_track: int
    best_live_streak: int
    total_completions: int


class QuitHeatmapDay(BaseModel):
    date: date
    cell: HeatCell


class QuitHeatmap(BaseModel):
    habit_id: str
    journey_start: datetime
    success_days: int
    relapse_days: int
    days: list[QuitHeatmapDay]


class Milestone(BaseModel):
    current: str
    next: str
    percent: float


class TriggerCount(BaseModel):
    trigger: str
    count: int


class RelapseView(BaseModel):
    date: datetime
    duration_seconds: int
    duration: str
    trigger: Optional[str] = None


class QuitReport(BaseModel):
    habit_id: str
    name: str
    quit_date: datetime
    journey_start: datetime
    elapsed: dict
    best_streak_seconds: int
    best_streak: str
    money_saved: float
    milestone: Milestone
    relapses: int
    recent_relapses: list[RelapseView]
    triggers: list[TriggerCount]
