"""Identity mapping between ClickUp users and internal backend users.

The two systems share no key, so users are paired heuristically. Rules are
tried in a fixed precedence, strongest first:

1. backlink      - the internal record stores the ClickUp id (``clickup_id``)
2. email         - exact email, trimmed and case-insensitive
3. email_prefix  - same local part (text before ``@``)
4. username      - exact username, case-insensitive (internal ``name`` stands
                   in when the record has no username)
5. name          - fuzzy name match after stripping diacritics

Matching is rule-major: every backlink pairing is made before any email
pairing is attempted, and so on down the list. An internal user paired once
is not offered to another ClickUp user, which keeps the reverse table
one-to-one.
"""

import asyncio
import enum
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from tasksync.schemas import ExternalUser, InternalUser

logger = logging.getLogger(__name__)

CACHE_KEY = "identity_map"


class MatchRule(str, enum.Enum):
    BACKLINK = "backlink"
    EMAIL = "email"
    EMAIL_PREFIX = "email_prefix"
    USERNAME = "username"
    NAME = "name"


RULE_PRECEDENCE = [
    MatchRule.BACKLINK,
    MatchRule.EMAIL,
    MatchRule.EMAIL_PREFIX,
    MatchRule.USERNAME,
    MatchRule.NAME,
]

# Shortest squashed name allowed to match by substring ("thien" in "thienbui").
_MIN_SUBSTRING_LEN = 4

# Letters NFKD does not decompose into base + combining mark.
_EXTRA_FOLDS = str.maketrans({"đ": "d", "Đ": "d", "ø": "o", "Ø": "o", "ł": "l", "Ł": "l"})


def normalize_email(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip().lower()
    return text or None


def email_local_part(value: Optional[str]) -> Optional[str]:
    email = normalize_email(value)
    if not email or "@" not in email:
        return None
    local = email.split("@", 1)[0]
    return local or None


def normalize_name(value: Optional[str]) -> str:
    """Lowercase, strip diacritics, turn punctuation into spaces, collapse whitespace."""
    text = (value or "").translate(_EXTRA_FOLDS)
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[\W_]+", " ", text.lower())
    return " ".join(text.split())


def _contains_run(short: List[str], long: List[str]) -> bool:
    n = len(short)
    return any(long[i:i + n] == short for i in range(len(long) - n + 1))


def names_match(a: Optional[str], b: Optional[str]) -> bool:
    """Fuzzy name comparison.

    Matches when one name contains the other, when they share at least two
    words, or when they share one word and one of them is a single word.
    """
    tokens_a = normalize_name(a).split()
    tokens_b = normalize_name(b).split()
    if not tokens_a or not tokens_b:
        return False

    short, long = sorted((tokens_a, tokens_b), key=len)
    if _contains_run(short, long):
        return True

    squashed_short, squashed_long = sorted(("".join(tokens_a), "".join(tokens_b)), key=len)
    if len(squashed_short) >= _MIN_SUBSTRING_LEN and squashed_short in squashed_long:
        return True

    shared = set(tokens_a) & set(tokens_b)
    if len(shared) >= 2:
        return True
    return len(shared) == 1 and (len(tokens_a) == 1 or len(tokens_b) == 1)


def rule_matches(rule: MatchRule, external: ExternalUser, internal: InternalUser) -> bool:
    """True if `rule` pairs the two users."""
    if rule is MatchRule.BACKLINK:
        return bool(internal.external_id) and internal.external_id == external.external_id

    if rule is MatchRule.EMAIL:
        ext_email = normalize_email(external.email)
        return ext_email is not None and ext_email == normalize_email(internal.email)

    if rule is MatchRule.EMAIL_PREFIX:
        ext_local = email_local_part(external.email)
        return ext_local is not None and ext_local == email_local_part(internal.email)

    if rule is MatchRule.USERNAME:
        ext_username = (external.username or "").strip().lower()
        int_username = (internal.username or internal.name or "").strip().lower()
        return bool(ext_username) and ext_username == int_username

    if rule is MatchRule.NAME:
        ext_names = [n for n in (external.display_name, external.username) if n]
        int_names = [n for n in (internal.name, internal.username) if n]
        return any(names_match(e, i) for e in ext_names for i in int_names)

    return False


def match_rule(external: ExternalUser, internal: InternalUser) -> Optional[MatchRule]:
    """Strongest rule pairing the two users, or None."""
    for rule in RULE_PRECEDENCE:
        if rule_matches(rule, external, internal):
            return rule
    return None


@dataclass
class IdentityMap:
    """Bidirectional external <-> internal user id correspondence."""

    forward: Dict[str, int] = field(default_factory=dict)
    reverse: Dict[int, str] = field(default_factory=dict)
    rules: Dict[str, MatchRule] = field(default_factory=dict)
    # Backlinks as stored on internal records, whether or not they matched
    backlinks: Dict[int, str] = field(default_factory=dict)
    unmatched: List[ExternalUser] = field(default_factory=list)
    ambiguous: List[str] = field(default_factory=list)
    external_count: int = 0
    internal_count: int = 0

    def add(self, external_id: str, internal_id: int, rule: MatchRule) -> None:
        self.forward[external_id] = internal_id
        self.reverse[internal_id] = external_id
        self.rules[external_id] = rule


def build_identity_map(
    external_users: Iterable[ExternalUser], internal_users: Iterable[InternalUser]
) -> IdentityMap:
    """Pair ClickUp users with internal users (pure, no I/O)."""
    pending: List[ExternalUser] = []
    seen = set()
    for user in external_users:
        if user.external_id not in seen:
            seen.add(user.external_id)
            pending.append(user)
    internals = list(internal_users)

    result = IdentityMap(external_count=len(pending), internal_count=len(internals))
    result.backlinks = {u.internal_id: u.external_id for u in internals if u.external_id}

    claimed: Dict[int, str] = {}
    for rule in RULE_PRECEDENCE:
        still_pending = []
        for ext in pending:
            winner = None
            blocked_by = None
            for internal in internals:
                if not rule_matches(rule, ext, internal):
                    continue
                if internal.internal_id in claimed:
                    blocked_by = blocked_by or internal
                    continue
                winner = internal
                break

            if winner is not None:
                claimed[winner.internal_id] = ext.external_id
                result.add(ext.external_id, winner.internal_id, rule)
                continue

            if blocked_by is not None and rule in (MatchRule.BACKLINK, MatchRule.EMAIL):
                result.ambiguous.append(
                    f"ClickUp user {ext.external_id} matches internal user "
                    f"{blocked_by.internal_id} by {rule.value}, already paired with "
                    f"ClickUp user {claimed[blocked_by.internal_id]}"
                )
            still_pending.append(ext)
        pending = still_pending

    result.unmatched = pending
    return result


class IdentityMapper:
    """Cached identity mapping backed by the ClickUp roster and the internal user list."""

    def __init__(
        self,
        clickup,
        backend,
        cache,
        *,
        ttl_seconds: float = 600,
        miss_diagnostics: bool = True,
    ):
        self.clickup = clickup
        self.backend = backend
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.miss_diagnostics = miss_diagnostics

    async def _fetch_and_build(self) -> IdentityMap:
        logger.info("Building user identity mapping")
        external_raw, internal_raw = await asyncio.gather(
            self.clickup.get_team_members(), self.backend.list_users()
        )
        external_users = [u for u in (ExternalUser.from_clickup(r) for r in external_raw) if u]
        internal_users = [u for u in (InternalUser.from_backend(r) for r in internal_raw) if u]

        mapping = build_identity_map(external_users, internal_users)

        for user in mapping.unmatched:
            logger.warning(
                f"ClickUp user {user.external_id} ({user.email or user.username or 'unknown'}) "
                f"could not be mapped"
            )
        for note in mapping.ambiguous:
            logger.warning(f"Ambiguous identity: {note}")
        logger.info(
            f"User mapping built: {len(external_users)} ClickUp users, "
            f"{len(internal_users)} internal users, {len(mapping.forward)} mapped"
        )
        return mapping

    async def build_mapping(self) -> IdentityMap:
        """Current mapping; rebuilt when older than the TTL.

        Fetch failures fall back to the previous mapping, or an empty one.
        """
        try:
            return await self.cache.get_or_build(CACHE_KEY, self.ttl_seconds, self._fetch_and_build)
        except Exception as e:
            previous = self.cache.peek(CACHE_KEY)
            logger.error(
                f"Failed to build user mapping: {e}; "
                f"{'using previous mapping' if previous else 'no mapping available'}"
            )
            return previous if previous is not None else IdentityMap()

    async def resolve(self, external_id) -> Optional[int]:
        """ClickUp user id -> internal user id"""
        external_id = str(external_id).strip() if external_id is not None else ""
        if not external_id:
            return None

        mapping = await self.build_mapping()
        internal_id = mapping.forward.get(external_id)
        if internal_id is not None:
            return internal_id

        logger.warning(f"No mapping found for ClickUp user {external_id}")
        if self.miss_diagnostics:
            await self._log_external_user(external_id)
        return None

    async def _log_external_user(self, external_id: str) -> None:
        try:
            info = await self.clickup.get_user(external_id)
        except Exception as e:
            logger.warning(f"Could not fetch ClickUp user {external_id}: {e}")
            return
        if info:
            logger.info(
                f"Unmapped ClickUp user {external_id}: "
                f"email={info.get('email')}, username={info.get('username')}"
            )

    async def resolve_reverse(self, internal_id) -> Optional[str]:
        """Internal user id -> ClickUp user id"""
        try:
            internal_id = int(internal_id)
        except (TypeError, ValueError):
            return None

        mapping = await self.build_mapping()
        external_id = mapping.reverse.get(internal_id)
        if external_id:
            return external_id

        backlink = mapping.backlinks.get(internal_id)
        if not backlink:
            # The roster may not include every user; ask for the record itself.
            try:
                record = await self.backend.get_user(internal_id)
            except Exception as e:
                logger.warning(f"Could not fetch internal user {internal_id}: {e}")
                record = None
            user = InternalUser.from_backend(record) if record else None
            backlink = user.external_id if user else None

        # A stored backlink that lost to another user does not count.
        if backlink and mapping.forward.get(backlink, internal_id) == internal_id:
            return backlink

        logger.warning(f"No mapping found for internal user {internal_id}")
        return None

    def clear_cache(self) -> None:
        self.cache.invalidate(CACHE_KEY)
        logger.info("User mapping cache cleared")

    async def refresh(self) -> IdentityMap:
        """Rebuild now. The current mapping is only replaced on success."""
        try:
            return await self.cache.rebuild(CACHE_KEY, self._fetch_and_build)
        except Exception as e:
            previous = self.cache.peek(CACHE_KEY)
            logger.error(
                f"Failed to refresh user mapping: {e}; "
                f"{'keeping previous mapping' if previous else 'no mapping available'}"
            )
            return previous if previous is not None else IdentityMap()

    async def report(self) -> Dict:
        """Mapping table plus diagnostics, for the debug endpoints."""
        mapping = await self.build_mapping()
        age = self.cache.age_seconds(CACHE_KEY)
        built_at = self.cache.built_at(CACHE_KEY)
        return {
            "total_mappings": len(mapping.forward),
            "cache_age_minutes": round(age / 60, 2) if age is not None else None,
            "last_updated": built_at.strftime("%Y-%m-%d %H:%M:%S") if built_at else None,
            "external_users": mapping.external_count,
            "internal_users": mapping.internal_count,
            "mappings": [
                {
                    "external_id": ext_id,
                    "internal_id": int_id,
                    "rule": mapping.rules[ext_id].value,
                }
                for ext_id, int_id in mapping.forward.items()
            ],
            "unmatched": [
                {"external_id": u.external_id, "email": u.email, "username": u.username}
                for u in mapping.unmatched
            ],
            "ambiguous": list(mapping.ambiguous),
        }

    async def persist_backlinks(self) -> Dict[str, int]:
        """Store heuristic matches on the internal records as explicit backlinks."""
        mapping = await self.build_mapping()
        stats = {"updated": 0, "failed": 0, "already_linked": 0}
        for external_id, internal_id in mapping.forward.items():
            if mapping.backlinks.get(internal_id) == external_id:
                stats["already_linked"] += 1
                continue
            try:
                await self.backend.update_user(internal_id, {"clickup_id": external_id})
                stats["updated"] += 1
            except Exception as e:
                logger.warning(f"Failed to store backlink for internal user {internal_id}: {e}")
                stats["failed"] += 1
        if stats["updated"]:
            self.clear_cache()
        logger.info(f"Persisted identity backlinks: {stats}")
        return stats
