"""
=============================================================================
DATES.PY — Utilidades de fechas y duraciones
=============================================================================
Funciones puras que usan todos los motores:
  - Fecha civil local ("hoy" en la zona horaria del usuario)
  - Timestamps sin zona → UTC (el ledger y las recaídas nunca mezclan naive y aware)
  - Rangos de días, días del año y del mes
  - Descomposición y formato de duraciones
  - Redondeo "half-up" (el de toda la vida, no el bancario de round())

Regla de oro: el ledger usa fechas CIVILES locales, nunca fechas UTC.
Un hábito marcado a las 23:30 en Madrid cuenta para ese día, no el siguiente.
"""

import calendar
import math
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional

import pytz

DEFAULT_TIMEZONE = os.getenv("HABITS_TIMEZONE", "Europe/Madrid")


# =============================================================================
# ===================== ZONAS HORARIAS ========================================
# =============================================================================

def get_timezone(name: Optional[str] = None):
    """Devuelve la zona horaria pytz; si el nombre no existe, usa la de por defecto"""
    try:
        return pytz.timezone(name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(DEFAULT_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_today(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """Fecha civil de hoy en la zona horaria del usuario"""
    now = now or utc_now()
    return ensure_aware(now).astimezone(get_timezone(tz_name)).date()


def local_date_of(moment: datetime, tz=None) -> date:
    """Fecha civil local de un instante (tz=None → UTC)"""
    moment = ensure_aware(moment)
    if tz is None:
        return moment.astimezone(timezone.utc).date()
    return moment.astimezone(tz).date()


# =============================================================================
# ===================== RANGOS DE DÍAS ========================================
# =============================================================================

def ensure_aware(moment: datetime) -> datetime:
    """Los timestamps sin zona se interpretan como UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def iter_days(start: date, end: date) -> Iterator[date]:
    """Itera de start a end, ambos incluidos"""
    cursor = start
    while cursor <= end:
        yield cursor
        cursor += timedelta(days=1)


def day_of_year(day: date) -> int:
    """Ordinal del día dentro de su año (1 = 1 de enero)"""
    return day.timetuple().tm_yday


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


# =============================================================================
# ===================== DURACIONES ============================================
# =============================================================================

@dataclass(frozen=True)
class Duration:
    """Tiempo transcurrido descompuesto (días, horas, minutos, segundos)"""
    days: int
    hours: int
    minutes: int
    seconds: int
    total_seconds: int

    @classmethod
    def from_seconds(cls, total: int) -> "Duration":
        total = max(0, int(total))
        days, rest = divmod(total, 86400)
        hours, rest = divmod(rest, 3600)
        minutes, seconds = divmod(rest, 60)
        return cls(days=days, hours=hours, minutes=minutes, seconds=seconds, total_seconds=total)

    def as_dict(self) -> dict:
        return {
            "days": self.days,
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "total_seconds": self.total_seconds,
        }


def seconds_between(start: datetime, end: datetime) -> int:
    """Segundos enteros (floor) de start a end, nunca negativos"""
    delta = ensure_aware(end) - ensure_aware(start)
    return max(0, math.floor(delta.total_seconds()))


def format_duration(seconds: int) -> str:
    """
    Formato compacto para el historial de recaídas:
      45 → "45s", 600 → "10m", 5400 → "1h 30m", 200000 → "2d 7h"
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h {minutes % 60}m"
    return f"{hours // 24}d {hours % 24}h"


# =============================================================================
# ===================== REDONDEO ==============================================
# =============================================================================

def round_half_up(value: float) -> int:
    """round() de Python redondea al par (2.5 → 2); aquí 2.5 → 3"""
    return math.floor(value + 0.5)


def percent(part: int, whole: int) -> int:
    """Porcentaje entero redondeado; 0 si el total es 0"""
    if whole <= 0:
        return 0
    return round_half_up(100 * part / whole)
