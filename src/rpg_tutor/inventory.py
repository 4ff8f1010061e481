"""Collectible items and rarity-weighted drops."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable

from rpg_tutor.achievements import Rarity
from rpg_tutor.errors import NotFound

MYSTERY_BOX_ID = "mystery-box"

# Lower rarity drops more often
RARITY_WEIGHTS: dict[Rarity, int] = {
    Rarity.COMMON: 50,
    Rarity.UNCOMMON: 25,
    Rarity.RARE: 15,
    Rarity.EPIC: 8,
    Rarity.LEGENDARY: 2,
}


@dataclass(frozen=True)
class CollectibleItem:
    id: str
    name: str
    description: str
    rarity: Rarity
    category: str = "collectible"  # collectible | equipment | consumable | cosmetic
    droppable: bool = True


ITEMS: dict[str, CollectibleItem] = {
    item.id: item
    for item in (
        CollectibleItem("study-candle", "Study Candle", "Lights up late-night revision", Rarity.COMMON),
        CollectibleItem("pocket-abacus", "Pocket Abacus", "Counts faster than fingers", Rarity.COMMON),
        CollectibleItem("ink-pot", "Ink Pot", "Never runs dry", Rarity.COMMON, "consumable"),
        CollectibleItem("star-chart", "Star Chart", "Maps the night sky", Rarity.UNCOMMON),
        CollectibleItem("lab-goggles", "Lab Goggles", "Safety first in the Laboratory Realm",
                        Rarity.UNCOMMON, "equipment"),
        CollectibleItem("ancient-scroll", "Ancient Scroll", "Whispers forgotten history", Rarity.UNCOMMON),
        CollectibleItem("enchanted-quill", "Enchanted Quill", "Writes with perfect grammar", Rarity.RARE, "equipment"),
        CollectibleItem("golden-calculator", "Golden Calculator", "Shines with mathematical prowess",
                        Rarity.RARE, "equipment"),
        CollectibleItem("team-player-medal", "Team Player Medal", "Awarded for great teamwork",
                        Rarity.RARE, "cosmetic", droppable=False),
        CollectibleItem("duel-champion-badge", "Duel Champion Badge", "Winner of a Math Duel",
                        Rarity.EPIC, "cosmetic", droppable=False),
        CollectibleItem("world-explorer-badge", "World Explorer Badge", "Visited every learning world",
                        Rarity.EPIC, "cosmetic", droppable=False),
        CollectibleItem("specialist-crown", "Specialist Crown", "A true subject expert",
                        Rarity.EPIC, "cosmetic", droppable=False),
        CollectibleItem("boss-slayer-weapon", "Boss Slayer", "Forged from a defeated knowledge boss",
                        Rarity.LEGENDARY, "equipment", droppable=False),
        CollectibleItem("phoenix-feather", "Phoenix Feather", "Rises from every mistake", Rarity.LEGENDARY),
        CollectibleItem(MYSTERY_BOX_ID, "Mystery Box", "Open it to find a random collectible",
                        Rarity.UNCOMMON, "consumable", droppable=False),
    )
}


def get_item(item_id: str) -> CollectibleItem:
    try:
        return ITEMS[item_id]
    except KeyError:
        raise NotFound(f"unknown item {item_id!r}", {"item_id": item_id}) from None


def draw_random_item(
    rng: random.Random | None = None,
    items: Iterable[CollectibleItem] | None = None,
) -> CollectibleItem | None:
    """Pick one droppable item, weighted by rarity. None when nothing can drop."""
    rng = rng or random.Random()
    pool = [item for item in (ITEMS.values() if items is None else items) if item.droppable]
    if not pool:
        return None
    weights = [RARITY_WEIGHTS[item.rarity] for item in pool]
    return rng.choices(pool, weights=weights, k=1)[0]
