"""
=============================================================================
GAMIFICATION.PY — Sistema de Gamificación (modo HERO)
=============================================================================
Gestiona:
  - XP por marcar/desmarcar hábitos BUILD
  - Niveles (cada nivel pide un 20% más de XP que el anterior)

Importante: el XP es un ACUMULADOR de eventos, no una vista del ledger.
Marcar suma 15, desmarcar resta 15, y las subidas de nivel ya hechas no
se deshacen. Rehacer el mismo ledger con otra secuencia de clics puede
dar otro HeroStats. La app web cuenta igual y los dos tienen que cuadrar.
"""

import logging

from dates import percent, round_half_up
from models import AppMode
from schemas import HeroStats, UserSettings

logger = logging.getLogger("habitledger.gamification")


# =============================================================================
# ===================== SISTEMA DE XP =========================================
# =============================================================================

XP_PER_COMPLETION = 15
LEVEL_GROWTH = 1.2


def xp_delta(became_completed: bool) -> int:
    """+15 si el día queda completado, -15 si se deshace"""
    return XP_PER_COMPLETION if became_completed else -XP_PER_COMPLETION


# =============================================================================
# ===================== SISTEMA DE NIVELES ====================================
# =============================================================================
# Nivel 1 → 500 XP, nivel 2 → 600, nivel 3 → 720, nivel 4 → 864...
# Es un while y no un if: un delta grande puede subir varios niveles de golpe.

def apply_xp(stats: HeroStats, delta: int) -> HeroStats:
    """
    Aplica un delta de XP y resuelve las subidas de nivel.

    Ejemplo:
      xp=490, next=500, level=1, delta=+15 → xp=5, level=2, next=600
    """
    xp = max(0, stats.xp + delta)
    level = stats.level
    next_level_xp = stats.next_level_xp

    while xp >= next_level_xp:
        xp -= next_level_xp
        level += 1
        # Con umbrales de 1 o 2 el 20% redondeado no crece: mínimo +1
        next_level_xp = max(next_level_xp + 1, round_half_up(next_level_xp * LEVEL_GROWTH))

    if level > stats.level:
        logger.info(f"⬆️ Subida de nivel: {stats.level} → {level}")

    return stats.model_copy(update={"xp": xp, "level": level, "next_level_xp": next_level_xp})


def on_habit_toggled(settings: UserSettings, became_completed: bool) -> tuple[UserSettings, int, bool]:
    """
    Observa un toggle de un hábito BUILD.

    Retorna:
      (ajustes nuevos, delta aplicado, ¿subió de nivel?)
    En modo ZEN no hace nada.
    """
    if settings.mode != AppMode.hero:
        return settings, 0, False

    delta = xp_delta(became_completed)
    stats = apply_xp(settings.hero_stats, delta)
    leveled_up = stats.level > settings.hero_stats.level
    return settings.model_copy(update={"hero_stats": stats}), delta, leveled_up


def get_level_info(stats: HeroStats) -> dict:
    """Información del nivel para la barra de XP y la de vida"""
    return {
        "level": stats.level,
        "xp": stats.xp,
        "xp_next_level": stats.next_level_xp,
        "xp_remaining": max(0, stats.next_level_xp - stats.xp),
        "xp_progress": percent(stats.xp, stats.next_level_xp),
        "hp": stats.hp,
        "max_hp": stats.max_hp,
        "hp_progress": percent(stats.hp, stats.max_hp),
    }
