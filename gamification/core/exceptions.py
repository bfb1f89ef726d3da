"""Errors raised by the scoring, achievement and season services."""


class GamificationError(Exception):
    """Base class for engine errors."""


class UnknownActivityType(GamificationError):
    """Activity type is outside the closed enumeration. Nothing was written."""

    def __init__(self, activity_type: str) -> None:
        self.activity_type = activity_type
        super().__init__(f"Unknown activity type: {activity_type!r}")


class LedgerWriteFailure(GamificationError):
    """One or more score increments could not be applied.

    ``failed_keys`` lists the ``(score_type, time_period)`` pairs that were
    not written. Increments for every other key were applied and must not be
    re-sent on retry.
    """

    def __init__(self, failed_keys: list[tuple[str, str]], cause: Exception | None = None) -> None:
        self.failed_keys = failed_keys
        self.cause = cause
        keys = ", ".join(f"{score_type}/{period}" for score_type, period in failed_keys)
        super().__init__(f"Ledger write failed for: {keys}")


class DuplicateAwardAttempt(GamificationError):
    """The user already holds the achievement. Treated as a no-op."""

    def __init__(self, user_id: str, achievement_id: int) -> None:
        self.user_id = user_id
        self.achievement_id = achievement_id
        super().__init__(f"Achievement {achievement_id} already granted to {user_id}")


class CriterionEvaluationFailure(GamificationError):
    """Evaluating a single achievement's criterion failed."""

    def __init__(self, achievement_code: str, reason: str) -> None:
        self.achievement_code = achievement_code
        self.reason = reason
        super().__init__(f"Criterion evaluation failed for {achievement_code}: {reason}")


class RolloverAlreadyArchived(GamificationError):
    """The season was already archived (or is being archived elsewhere)."""

    def __init__(self, tenant_id: str, season_period: str) -> None:
        self.tenant_id = tenant_id
        self.season_period = season_period
        super().__init__(f"Season {season_period!r} already archived for tenant {tenant_id}")


class SeasonArchiveIncomplete(GamificationError):
    """Some categories could not be archived, so the ledger was not reset."""

    def __init__(self, tenant_id: str, season_period: str, failed_categories: list[str]) -> None:
        self.tenant_id = tenant_id
        self.season_period = season_period
        self.failed_categories = failed_categories
        super().__init__(
            f"Season {season_period!r} for tenant {tenant_id} not archived for: "
            + ", ".join(failed_categories)
        )
