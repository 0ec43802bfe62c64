"""Leaderboard ranking.

Global standing orders members by cached participation count (desc), then by
the time of their latest approved participation (earlier is better, never
active is worst), then by account creation time (earlier is better). Ranks are
sequential positions in that order and are never shared.

Category and search views only change which rows are shown and which count is
displayed; every row keeps the rank it holds in the global standing.
"""
import enum
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from models import Profile
from participation_service import category_participation_counts
from time_utils import to_epoch

TOP_LEADERBOARD_LIMIT = 10


class RankBadge(str, enum.Enum):
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"
    PLAIN = "plain"


class LeaderboardSort(str, enum.Enum):
    STANDING = "standing"
    RANK = "rank"
    FULL_NAME = "full_name"
    PARTICIPATION_COUNT = "participation_count"
    LAST_ACTIVITY_AT = "last_activity_at"


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class LeaderboardRow:
    rank: int
    badge: RankBadge
    profile_id: int
    full_name: str
    org_unit: Optional[str]
    avatar_url: Optional[str]
    participation_count: int
    total_participation_count: int
    last_activity_at: Optional[datetime]
    created_at: Optional[datetime]


@dataclass
class LeaderboardView:
    entries: List[LeaderboardRow] = field(default_factory=list)
    total_matches: int = 0
    truncated: bool = False
    search: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.entries


def _time_key(value: Optional[datetime]) -> float:
    epoch = to_epoch(value)
    return math.inf if epoch is None else epoch


def standing_key(count: int, last_activity_at: Optional[datetime], created_at: Optional[datetime], row_id: int = 0) -> Tuple:
    return (-int(count or 0), _time_key(last_activity_at), _time_key(created_at), row_id)


def _profile_key(profile: Profile, count: Optional[int] = None) -> Tuple:
    effective = profile.total_participation_count if count is None else count
    return standing_key(effective, profile.last_activity_at, profile.created_at, profile.id)


def compute_global_ranks(profiles: Iterable[Profile]) -> Dict[int, int]:
    ordered = sorted(profiles, key=_profile_key)
    return {profile.id: position for position, profile in enumerate(ordered, start=1)}


def rank_badge(rank: int) -> RankBadge:
    if rank == 1:
        return RankBadge.GOLD
    if rank == 2:
        return RankBadge.SILVER
    if rank == 3:
        return RankBadge.BRONZE
    return RankBadge.PLAIN


def _normalize_search(search: Optional[str]) -> Optional[str]:
    value = (search or "").strip()
    return value or None


def _display_sort(rows: List[LeaderboardRow], sort: LeaderboardSort, direction: SortDirection) -> List[LeaderboardRow]:
    reverse = direction == SortDirection.DESC
    if sort == LeaderboardSort.RANK:
        return sorted(rows, key=lambda row: row.rank, reverse=reverse)
    if sort == LeaderboardSort.FULL_NAME:
        return sorted(rows, key=lambda row: (row.full_name.casefold(), row.rank), reverse=reverse)
    if sort == LeaderboardSort.PARTICIPATION_COUNT:
        # Equal counts keep earlier activity first, never-active last; desc mirrors asc.
        return sorted(
            rows,
            key=lambda row: (row.participation_count, _time_key(row.last_activity_at)),
            reverse=reverse,
        )
    if sort == LeaderboardSort.LAST_ACTIVITY_AT:
        return sorted(rows, key=lambda row: to_epoch(row.last_activity_at) or 0.0, reverse=reverse)
    return rows


def build_leaderboard(
    profiles: Sequence[Profile],
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    category_counts: Optional[Dict[int, int]] = None,
    sort: LeaderboardSort = LeaderboardSort.STANDING,
    direction: SortDirection = SortDirection.ASC,
    limit: int = TOP_LEADERBOARD_LIMIT,
) -> LeaderboardView:
    search_text = _normalize_search(search)
    category_name = (category or "").strip() or None
    global_ranks = compute_global_ranks(profiles)

    candidates = list(profiles)
    if search_text:
        needle = search_text.casefold()
        candidates = [p for p in candidates if needle in (p.full_name or "").casefold()]

    counts: Dict[int, int] = {}
    if category_name:
        scoped = category_counts or {}
        candidates = [p for p in candidates if scoped.get(p.id, 0) > 0]
        counts = {p.id: scoped[p.id] for p in candidates}
    else:
        counts = {p.id: int(p.total_participation_count or 0) for p in candidates}

    candidates.sort(key=lambda p: _profile_key(p, counts[p.id]))
    total_matches = len(candidates)

    truncated = False
    if not search_text and not category_name and total_matches > limit:
        candidates = candidates[:limit]
        truncated = True

    rows = [
        LeaderboardRow(
            rank=global_ranks[p.id],
            badge=rank_badge(global_ranks[p.id]),
            profile_id=p.id,
            full_name=p.full_name,
            org_unit=p.org_unit,
            avatar_url=p.avatar_url,
            participation_count=counts[p.id],
            total_participation_count=int(p.total_participation_count or 0),
            last_activity_at=p.last_activity_at,
            created_at=p.created_at,
        )
        for p in candidates
    ]
    return LeaderboardView(
        entries=_display_sort(rows, sort, direction),
        total_matches=total_matches,
        truncated=truncated,
        search=search_text,
        category=category_name,
    )


def load_leaderboard(
    db: Session,
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort: LeaderboardSort = LeaderboardSort.STANDING,
    direction: SortDirection = SortDirection.ASC,
    limit: int = TOP_LEADERBOARD_LIMIT,
) -> LeaderboardView:
    profiles = db.query(Profile).all()
    category_counts = None
    if (category or "").strip():
        category_counts = category_participation_counts(db, category)
    return build_leaderboard(
        profiles,
        search=search,
        category=category,
        category_counts=category_counts,
        sort=sort,
        direction=direction,
        limit=limit,
    )
