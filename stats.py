"""
=============================================================================
STATS.PY — Estadísticas de hábitos BUILD
=============================================================================
Todo se calcula a partir del ledger; nada se guarda.

  - Consistencia actual: % de días completados en los últimos 30 (hoy incluido)
  - Media anual: % de días completados en lo que va de año
  - Gap y estado: consistencia actual vs. objetivo del usuario
  - Nota: A (>=90) · B (>=80) · C (>=60) · D (>=40) · F
  - Mejor mes: el mes con más días completados
  - Racha viva: días seguidos hasta hoy, con un día de gracia para "hoy"

La racha con gracia:
  Si hoy NO está marcado pero ayer SÍ, la racha se cuenta desde ayer.
  Así la racha no aparece rota por la mañana, antes de que el usuario
  haya tenido ocasión de marcar el hábito.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from dates import days_in_month, day_of_year, iter_days, month_key, percent, round_half_up
from ledger import Ledger, completed_days, count_completions, ids_on, is_complete
from models import Grade, HeatmapScope, Recommendation, TrackStatus, WeekStart
from schemas import (
    BuildHabit, DailyTrend, HabitHeatmap, HabitPerformance, HabitReport,
    HeatmapDay, MonthlyDashboard, MonthStats, Overview
)

WINDOW_DAYS = 30

# Umbrales de nota (límite inferior incluido, de arriba abajo)
GRADE_BANDS = [
    (90, Grade.a),
    (80, Grade.b),
    (60, Grade.c),
    (40, Grade.d),
]


# =============================================================================
# ===================== CLASIFICACIONES =======================================
# =============================================================================

def grade_for(score: int) -> Grade:
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return Grade.f


def recommendation_for(consistency: int) -> Recommendation:
    if consistency < 50:
        return Recommendation.needs_focus
    if consistency < 80:
        return Recommendation.building
    return Recommendation.excellent


def status_for(consistency: int, target: int) -> TrackStatus:
    return TrackStatus.on_track if consistency >= target else TrackStatus.off_track


# =============================================================================
# ===================== RACHAS ================================================
# =============================================================================

def live_streak(ledger: Ledger, habit_id: str, today: date) -> int:
    """
    Días consecutivos completados terminando hoy (o ayer, si hoy aún no).
      {D-2, D-1} sin D → 2 · {D-1, D} → 2 · solo D-2 → 0
    """
    if is_complete(ledger, habit_id, today):
        cursor = today
    elif is_complete(ledger, habit_id, today - timedelta(days=1)):
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while is_complete(ledger, habit_id, cursor):
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(
    ledger: Ledger,
    habit_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> int:
    """Racha más larga dentro de [start, end] (sin límites = histórico completo)"""
    best = 0
    run = 0
    previous = None
    for day in completed_days(ledger, habit_id):
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            break
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        best = max(best, run)
        previous = day
    return best


# =============================================================================
# ===================== CONSISTENCIA ==========================================
# =============================================================================

def current_consistency(ledger: Ledger, habit_id: str, today: date, window: int = WINDOW_DAYS) -> int:
    start = today - timedelta(days=window - 1)
    return percent(count_completions(ledger, habit_id, start, today), window)


def yearly_average(ledger: Ledger, habit_id: str, today: date) -> int:
    """Media del año HASTA HOY (no del año completo)"""
    start = date(today.year, 1, 1)
    completions = count_completions(ledger, habit_id, start, today)
    return percent(completions, day_of_year(today))


def best_month(ledger: Ledger, habit_id: str, today: date) -> tuple[str, int]:
    """
    Mes con más completados (de cualquier año con datos).
    Empates: gana el primero en orden cronológico.
    Sin completados: el mes actual.
    """
    counts: dict[str, int] = {}
    for day in completed_days(ledger, habit_id):
        key = month_key(day.year, day.month)
        counts[key] = counts.get(key, 0) + 1

    best_key, best_count = month_key(today.year, today.month), 0
    for key, count in counts.items():
        if count > best_count:
            best_key, best_count = key, count
    return best_key, best_count


def habit_report(habit: BuildHabit, ledger: Ledger, today: date) -> HabitReport:
    """Informe completo de un hábito en la ventana de 30 días que acaba hoy"""
    start = today - timedelta(days=WINDOW_DAYS - 1)
    completions = count_completions(ledger, habit.id, start, today)
    consistency = percent(completions, WINDOW_DAYS)
    month, month_count = best_month(ledger, habit.id, today)

    return HabitReport(
        habit_id=habit.id,
        name=habit.name,
        window_days=WINDOW_DAYS,
        completions_in_window=completions,
        current_consistency=consistency,
        yearly_avg=yearly_average(ledger, habit.id, today),
        target_consistency=habit.target_consistency,
        gap=consistency - habit.target_consistency,
        status=status_for(consistency, habit.target_consistency),
        grade=grade_for(consistency),
        best_month=month,
        best_month_completions=month_count,
        recommendation=recommendation_for(consistency),
        live_streak=live_streak(ledger, habit.id, today),
        longest_streak=longest_streak(ledger, habit.id),
        streak_goal=habit.streak_goal,
    )


# =============================================================================
# ===================== VISTAS MENSUALES ======================================
# =============================================================================

def month_stats(habit: BuildHabit, ledger: Ledger, year: int, month: int) -> MonthStats:
    """Fila de la cuadrícula mensual: consistencia y mejor racha DENTRO del mes"""
    first = date(year, month, 1)
    last = date(year, month, days_in_month(year, month))
    completions = count_completions(ledger, habit.id, first, last)
    return MonthStats(
        habit_id=habit.id,
        year=year,
        month=month,
        completions=completions,
        consistency=percent(completions, days_in_month(year, month)),
        best_streak=longest_streak(ledger, habit.id, first, last),
    )


def _week_offset(day: date, week_starts_on: WeekStart) -> int:
    """Posición del día dentro de la semana (0 = primer día de la semana)"""
    if week_starts_on == WeekStart.monday:
        return day.weekday()
    return (day.weekday() + 1) % 7


def habit_heatmap(
    habit: BuildHabit,
    ledger: Ledger,
    scope: HeatmapScope,
    anchor: date,
    today: date,
    week_starts_on: WeekStart = WeekStart.sunday,
) -> HabitHeatmap:
    """
    Mapa de calor de una semana, un mes o un año alrededor de `anchor`.
    Los días futuros se marcan como tales (la interfaz los atenúa).
    """
    if scope == HeatmapScope.year:
        start, end = date(anchor.year, 1, 1), date(anchor.year, 12, 31)
    elif scope == HeatmapScope.month:
        start = date(anchor.year, anchor.month, 1)
        end = date(anchor.year, anchor.month, days_in_month(anchor.year, anchor.month))
    else:
        start = anchor - timedelta(days=_week_offset(anchor, week_starts_on))
        end = start + timedelta(days=6)

    days = [
        HeatmapDay(date=day, done=is_complete(ledger, habit.id, day), future=day > today)
        for day in iter_days(start, end)
    ]
    done = sum(1 for d in days if d.done)

    return HabitHeatmap(
        habit_id=habit.id,
        scope=scope,
        start=start,
        end=end,
        leading_blanks=0 if scope == HeatmapScope.week else _week_offset(start, week_starts_on),
        completed_days=done,
        total_days=len(days),
        percentage=percent(done, len(days)),
        days=days,
    )


def monthly_dashboard(habits: Iterable[BuildHabit], ledger: Ledger, year: int, month: int) -> MonthlyDashboard:
    """
    Panel mensual:
      - Tendencia diaria (cuántos hábitos se completaron y qué % del total)
      - Ranking de hábitos por % del mes, con su distancia al objetivo
      - Nota del mes según la consistencia media diaria
    Solo cuentan ids de hábitos conocidos: los ids colgando no suman.
    """
    habits = list(habits)
    known = {h.id for h in habits}
    n_days = days_in_month(year, month)

    trend = []
    for day in range(1, n_days + 1):
        completed = len(ids_on(ledger, date(year, month, day)) & known)
        trend.append(DailyTrend(day=day, completed=completed, percentage=percent(completed, len(habits))))

    first, last = date(year, month, 1), date(year, month, n_days)
    performance = []
    for habit in habits:
        completions = count_completions(ledger, habit.id, first, last)
        rate = percent(completions, n_days)
        performance.append(HabitPerformance(
            habit_id=habit.id,
            name=habit.name,
            color=habit.color,
            category=habit.category,
            target_consistency=habit.target_consistency,
            completions=completions,
            rate=rate,
            gap=rate - habit.target_consistency,
        ))
    performance.sort(key=lambda p: p.rate, reverse=True)

    average = round_half_up(sum(t.percentage for t in trend) / n_days)

    return MonthlyDashboard(
        year=year,
        month=month,
        trend=trend,
        performance=performance,
        total_completions=sum(t.completed for t in trend),
        average_consistency=average,
        grade=grade_for(average),
        top_performer=performance[0] if performance else None,
        worst_performer=performance[-1] if performance else None,
    )


def overview(habits: Iterable[BuildHabit], ledger: Ledger, today: date) -> Overview:
    """Resumen agregado de todos los hábitos BUILD"""
    habits = list(habits)
    reports = [habit_report(h, ledger, today) for h in habits]
    average = round_half_up(sum(r.current_consistency for r in reports) / len(reports)) if reports else 0
    return Overview(
        date=today,
        habits=reports,
        average_consistency=average,
        on_track=sum(1 for r in reports if r.status == TrackStatus.on_track),
        best_live_streak=max((r.live_streak for r in reports), default=0),
        total_completions=sum(count_completions(ledger, h.id) for h in habits),
    )
