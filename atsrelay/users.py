"""
Credited-to user resolution.

Finds the Ashby user that uploads are credited to: a configured user id,
a recent cached answer, a configured email, or the single enabled user
whose name best matches the API key's title. Ties are left unresolved.
"""

import re
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import Settings
from .logger import StructuredLogger, get_logger
from .models import WriteAudit


CACHE_TTL_SECONDS = 300
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    for token in _TOKEN_SPLIT.split(str(text or "").lower()):
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def user_tokens(user: Dict[str, Any]) -> List[str]:
    email_local = str(user.get("email") or "").split("@", 1)[0]
    parts = [user.get("firstName"), user.get("lastName"), email_local]
    return tokenize(" ".join(str(p or "") for p in parts))


def score_user(user: Dict[str, Any], title_tokens: List[str]) -> int:
    """+3 per exact token of length >= 4, +2 per shorter exact token, +1 per prefix."""
    score = 0
    for wanted in title_tokens:
        for token in user_tokens(user):
            if token == wanted:
                score += 3 if len(token) >= 4 else 2
            elif token.startswith(wanted) or wanted.startswith(token):
                score += 1
    return score


def pick_best_user(users: List[Dict[str, Any]], title_tokens: List[str]) -> Tuple[Optional[Dict[str, Any]], int]:
    """Return the unique top scorer, or (None, best) on a tie or zero score."""
    best_score = 0
    best: List[Dict[str, Any]] = []
    for user in users:
        score = score_user(user, title_tokens)
        if score > best_score:
            best_score = score
            best = [user]
        elif score == best_score and score > 0:
            best.append(user)
    if best_score <= 0 or len(best) != 1:
        return None, best_score
    return best[0], best_score


class CreditedUserResolver:
    def __init__(
        self,
        client,
        settings: Settings,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.settings = settings
        self.logger = logger or get_logger()
        self.clock = clock
        self._cached: Optional[Tuple[str, float]] = None

    def clear_cache(self) -> None:
        self._cached = None

    async def resolve(self, audit: Optional[WriteAudit] = None) -> str:
        """
        Resolve the credited-to user id.

        Returns:
            The user id, or "" when no single user can be chosen
        """
        if self.settings.credited_to_user_id:
            return self.settings.credited_to_user_id

        now = self.clock()
        if self._cached and self._cached[1] > now:
            return self._cached[0]

        users = [u for u in await self._list_users(audit) if u.get("isEnabled", True)]

        wanted_email = self.settings.credited_to_user_email.strip().lower()
        if wanted_email:
            for user in users:
                if str(user.get("email") or "").strip().lower() == wanted_email:
                    return self._remember(str(user.get("id") or ""), "email")

        response = await self.client.call("apiKey.info", {}, audit)
        results = response.get("results") or {}
        title = results.get("title") if isinstance(results, dict) else ""
        title_tokens = tokenize(title or "")
        user, score = pick_best_user(users, title_tokens)
        if user is None:
            self.logger.info("credited_user.unresolved", title=title, best_score=score, users=len(users))
            return ""
        return self._remember(str(user.get("id") or ""), "api_key_title", score=score)

    def _remember(self, user_id: str, strategy: str, **context) -> str:
        if user_id:
            self._cached = (user_id, self.clock() + CACHE_TTL_SECONDS)
        self.logger.info("credited_user.resolved", user_id=user_id, strategy=strategy, **context)
        return user_id

    async def _list_users(self, audit: Optional[WriteAudit]) -> List[Dict[str, Any]]:
        users: List[Dict[str, Any]] = []
        cursor = ""
        while True:
            response = await self.client.call("user.list", {"cursor": cursor, "limit": 100}, audit)
            users.extend(u for u in response.get("results") or [] if isinstance(u, dict))
            cursor = str(response.get("nextCursor") or "")
            if not response.get("moreDataAvailable") or not cursor:
                break
        return users
