"""
=============================================================================
LEDGER.PY — Registro de hábitos completados
=============================================================================
El ledger es un mapa:  fecha civil → conjunto de ids completados ese día

  {
    date(2024, 1, 1): frozenset({"1", "5"}),
    date(2024, 1, 2): frozenset({"5"}),
  }

Reglas:
  - Fechas ausentes = no se completó nada ese día.
  - Nunca se guardan días vacíos (si un día se queda sin ids, desaparece).
  - Copy-on-write: toggle() devuelve un ledger NUEVO, el anterior no cambia.
    Quien tenga una foto vieja del estado la puede seguir leyendo.
  - No se valida que el id exista en la lista de hábitos: un hábito borrado
    deja ids "colgando" en el ledger y simplemente dejan de mostrarse.
"""

from datetime import date
from typing import Iterable, Mapping, Optional

Ledger = Mapping[date, frozenset]


def toggle(ledger: Ledger, habit_id: str, day: date) -> dict:
    """
    Marca o desmarca un hábito en un día.
    toggle(toggle(L, h, d), h, d) == L
    """
    updated = dict(ledger)
    current = ledger.get(day, frozenset())
    if habit_id in current:
        remaining = current - {habit_id}
        if remaining:
            updated[day] = remaining
        else:
            del updated[day]
    else:
        updated[day] = current | {habit_id}
    return updated


def is_complete(ledger: Ledger, habit_id: str, day: date) -> bool:
    return habit_id in ledger.get(day, ())


def ids_on(ledger: Ledger, day: date) -> frozenset:
    return ledger.get(day, frozenset())


def completed_days(ledger: Ledger, habit_id: str) -> list[date]:
    """Todos los días en los que se completó el hábito, ordenados"""
    return sorted(day for day, ids in ledger.items() if habit_id in ids)


def count_completions(
    ledger: Ledger,
    habit_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> int:
    """Cuenta días completados en [start, end] (límites opcionales, incluidos)"""
    total = 0
    for day, ids in ledger.items():
        if habit_id not in ids:
            continue
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        total += 1
    return total


def from_lists(raw: Mapping[date, Iterable[str]]) -> dict:
    """Convierte {fecha: [ids]} en ledger, descartando días vacíos"""
    return {day: frozenset(ids) for day, ids in raw.items() if ids}


def to_lists(ledger: Ledger) -> dict:
    """Ledger → {"YYYY-MM-DD": [ids ordenados]} para serializar"""
    return {day.isoformat(): sorted(ids) for day, ids in sorted(ledger.items())}
