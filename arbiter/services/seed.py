"""
arbiter.services.seed — Special Community Seeder
==================================================

Seeds the platform's singleton communities (future-vision,
marathon-of-good, support) from ``seeds/communities.yaml``.

YAML is used only for initial seeding; a type that already has a
community is left untouched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select

from arbiter.database.engine import get_session
from arbiter.database.models import Community, CommunityTypeTag

logger = logging.getLogger(__name__)

# Resolve the seeds directory relative to the project root
_SEEDS_DIR = Path(__file__).resolve().parent.parent.parent / "seeds"

_SINGLETON_TYPES = frozenset({
    CommunityTypeTag.FUTURE_VISION,
    CommunityTypeTag.MARATHON_OF_GOOD,
    CommunityTypeTag.SUPPORT,
})


def _load_yaml(path: Path) -> Any:
    """Load a YAML seed file; a missing file seeds nothing."""
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return []
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or []


def seed_special_communities(engine: Engine, path: Path | None = None) -> int:
    """Insert each seeded singleton community whose type has none yet.

    Idempotent.  Returns the number of communities created.
    """
    items = _load_yaml(path or _SEEDS_DIR / "communities.yaml")
    created = 0
    with get_session(engine) as session:
        for item in items:
            tag = CommunityTypeTag.parse(item.get("type_tag"))
            if tag not in _SINGLETON_TYPES:
                logger.warning(
                    "Skipping seed %r: %s is not a singleton community type",
                    item.get("id"), tag,
                )
                continue

            existing = session.scalar(
                select(Community.id).where(Community.type_tag == tag.value).limit(1)
            )
            if existing:
                logger.info("Community of type %s already exists (%s), skipping.", tag, existing)
                continue

            session.add(Community(
                id=item["id"],
                name=item["name"],
                type_tag=tag.value,
                permission_rules=item.get("permission_rules") or [],
                voting_settings=item.get("voting_settings") or {},
                merit_settings=item.get("merit_settings") or {},
                settings=item.get("settings") or {},
                is_active=item.get("is_active", True),
            ))
            created += 1

    if created:
        logger.info("Seeded %d special communities.", created)
    return created
