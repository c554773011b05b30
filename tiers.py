from __future__ import annotations


# Progression tiers: (tier, lifetime Light threshold, title)
TIERS: list[tuple[int, int, str]] = [
    (1, 0, "The Spark"),
    (2, 250, "The Lamplighter"),
    (3, 1000, "The Beacon"),
    (4, 3000, "The Sentinel"),
    (5, 7000, "The Guardian"),
    (6, 15000, "The Luminary"),
    (7, 30000, "The Citadel Heart"),
]

MIN_TIER = TIERS[0][0]
MAX_TIER = TIERS[-1][0]


def compute_tier(total_light: int) -> int:
    total = int(total_light or 0)
    tier = MIN_TIER
    for number, threshold, _title in TIERS:
        if total >= threshold:
            tier = number
        else:
            break
    return tier


def tier_title(tier: int) -> str:
    for number, _threshold, title in TIERS:
        if number == tier:
            return title
    return TIERS[0][2]


def tier_threshold(tier: int) -> int:
    for number, threshold, _title in TIERS:
        if number == tier:
            return threshold
    return 0


def tier_progress(total_light: int) -> dict:
    """Where a lifetime total sits between its tier and the next one."""
    total = max(0, int(total_light or 0))
    current = compute_tier(total)
    current_threshold = tier_threshold(current)

    if current >= MAX_TIER:
        return {
            "tier": current,
            "title": tier_title(current),
            "total_light": total,
            "current_threshold": current_threshold,
            "next_tier": None,
            "next_threshold": None,
            "light_needed": 0,
            "progress_percent": 100,
        }

    next_threshold = tier_threshold(current + 1)
    span = next_threshold - current_threshold
    percent = int(((total - current_threshold) * 100) // span) if span > 0 else 100

    return {
        "tier": current,
        "title": tier_title(current),
        "total_light": total,
        "current_threshold": current_threshold,
        "next_tier": current + 1,
        "next_threshold": next_threshold,
        "light_needed": next_threshold - total,
        "progress_percent": min(100, max(0, percent)),
    }
