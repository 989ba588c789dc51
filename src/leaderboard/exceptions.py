class LeaderboardError(Exception):
    pass


class PersistenceFailure(LeaderboardError):
    """A deposit or leaderboard write failed. The digest is already marked seen."""


class CompetitionActive(LeaderboardError):
    """A competition is already running."""
