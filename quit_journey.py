"""
=============================================================================
QUIT_JOURNEY.PY — Motor de hábitos QUIT (dejar algo)
=============================================================================
Un hábito QUIT no se "marca" cada día: se mide el tiempo limpio.

  quit_date           → inicio de la racha limpia actual
  original_quit_date  → primer intento (se fija en la primera recaída)
  quit_history        → recaídas, la más reciente primero

Al registrar una recaída:
  1. duración = recaída - quit_date (mínimo 0, nunca negativa)
  2. se añade el registro al principio del historial
  3. original_quit_date se captura UNA sola vez
  4. quit_date pasa a ser el momento de la recaída

El "inicio del viaje" (journey_start) es lo más antiguo que conocemos:
el primer intento o la recaída más antigua. Así el mapa de calor y los
contadores de días limpios no "olvidan" lo anterior al último reinicio.
"""

from datetime import date, datetime
from typing import Optional

from dates import Duration, ensure_aware, format_duration, iter_days, local_date_of, seconds_between
from models import HeatCell
from schemas import (
    Milestone, QuitHabit, QuitHeatmap, QuitHeatmapDay, QuitReport,
    RelapseRecord, RelapseView, TriggerCount
)

TRIGGER_OPTIONS = [
    "Stress/Anxiety", "Boredom", "Social Pressure", "Alcohol/Party", "After Meal",
    "Waking Up", "Anger/Frustration", "Sadness", "Cravings", "Other",
]

MILESTONES = [
    ("24 Hours", 86400),
    ("3 Days", 259200),
    ("1 Week", 604800),
    ("1 Month", 2592000),
]

UNKNOWN_TRIGGER = "Unknown"


# =============================================================================
# ===================== TIEMPO LIMPIO =========================================
# =============================================================================

def elapsed_since(timestamp: datetime, now: datetime) -> Duration:
    """Tiempo desde `timestamp` hasta `now`, descompuesto (0 si es futuro)"""
    return Duration.from_seconds(seconds_between(timestamp, now))


def journey_start(habit: QuitHabit) -> datetime:
    """min(original_quit_date ?? quit_date, recaída más antigua)"""
    start = habit.original_quit_date or habit.quit_date
    for record in habit.quit_history:
        if record.date < start:
            start = record.date
    return start


def best_streak_ever(habit: QuitHabit, now: datetime) -> int:
    """Mejor racha en segundos: la del historial o la actual si es mayor"""
    current = seconds_between(habit.quit_date, now)
    return max([current] + [r.duration_seconds for r in habit.quit_history])


def money_saved(habit: QuitHabit, now: datetime) -> float:
    """Proyección lineal: días limpios × coste diario (0 si no hay coste)"""
    if not habit.quit_cost_per_day:
        return 0.0
    return seconds_between(habit.quit_date, now) / 86400 * habit.quit_cost_per_day


# =============================================================================
# ===================== RECAÍDAS ==============================================
# =============================================================================

def log_relapse(habit: QuitHabit, when: datetime, trigger: Optional[str] = None) -> QuitHabit:
    """
    Registra una recaída y reinicia la racha limpia.
    Si `when` es anterior a quit_date, la duración se queda en 0.
    """
    record = RelapseRecord(
        date=when,
        duration_seconds=seconds_between(habit.quit_date, when),
        trigger=trigger,
    )
    return habit.model_copy(update={
        "quit_history": (record,) + tuple(habit.quit_history),
        "original_quit_date": habit.original_quit_date or habit.quit_date,
        "quit_date": record.date,
    })


def reset_quit_date(habit: QuitHabit, when: datetime, now: datetime) -> QuitHabit:
    """
    Edición manual del inicio de la racha actual.
    Se acota a [original_quit_date, now] para no romper las invariantes.
    """
    when = min(ensure_aware(when), ensure_aware(now))
    if habit.original_quit_date is not None and when < habit.original_quit_date:
        when = habit.original_quit_date
    return habit.model_copy(update={"quit_date": when})


def trigger_breakdown(habit: QuitHabit) -> list[TriggerCount]:
    """Recaídas por desencadenante, de más a menos frecuente"""
    counts: dict[str, int] = {}
    for record in habit.quit_history:
        trigger = record.trigger or UNKNOWN_TRIGGER
        counts[trigger] = counts.get(trigger, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [TriggerCount(trigger=name, count=count) for name, count in ranked]


# =============================================================================
# ===================== HITOS Y MAPA DE CALOR =================================
# =============================================================================

def milestone_progress(seconds: int) -> Milestone:
    """Hito actual, siguiente y % de avance entre ambos"""
    previous = None
    upcoming = None
    for name, threshold in MILESTONES:
        if threshold <= seconds:
            previous = (name, threshold)
        elif upcoming is None:
            upcoming = (name, threshold)

    if upcoming and previous:
        pct = (seconds - previous[1]) / (upcoming[1] - previous[1]) * 100
    elif upcoming:
        pct = seconds / upcoming[1] * 100
    else:
        pct = 100.0

    return Milestone(
        current=previous[0] if previous else "Starting",
        next=upcoming[0] if upcoming else "Mastery",
        percent=round(pct, 1),
    )


def heatmap(habit: QuitHabit, today: date, tz=None) -> QuitHeatmap:
    """
    Un día por celda desde el inicio del viaje hasta hoy:
      RELAPSE si ese día hubo alguna recaída, SUCCESS si no (hoy incluido).
    Los días fuera de [journey_start, hoy] no cuentan para nada.
    """
    start = journey_start(habit)
    relapse_days = {local_date_of(r.date, tz) for r in habit.quit_history}

    days = []
    for day in iter_days(local_date_of(start, tz), today):
        cell = HeatCell.relapse if day in relapse_days else HeatCell.success
        days.append(QuitHeatmapDay(date=day, cell=cell))

    return QuitHeatmap(
        habit_id=habit.id,
        journey_start=start,
        success_days=sum(1 for d in days if d.cell == HeatCell.success),
        relapse_days=sum(1 for d in days if d.cell == HeatCell.relapse),
        days=days,
    )


def quit_report(habit: QuitHabit, now: datetime, history_limit: int = 5) -> QuitReport:
    """Tarjeta de un hábito QUIT: contador, ahorro, hitos e historial reciente"""
    elapsed = elapsed_since(habit.quit_date, now)
    best = best_streak_ever(habit, now)
    return QuitReport(
        habit_id=habit.id,
        name=habit.name,
        quit_date=habit.quit_date,
        journey_start=journey_start(habit),
        elapsed=elapsed.as_dict(),
        best_streak_seconds=best,
        best_streak=format_duration(best),
        money_saved=round(money_saved(habit, now), 2),
        milestone=milestone_progress(elapsed.total_seconds),
        relapses=len(habit.quit_history),
        recent_relapses=[
            RelapseView(
                date=r.date,
                duration_seconds=r.duration_seconds,
                duration=format_duration(r.duration_seconds),
                trigger=r.trigger,
            )
            for r in habit.quit_history[:history_limit]
        ],
        triggers=trigger_breakdown(habit),
    )
