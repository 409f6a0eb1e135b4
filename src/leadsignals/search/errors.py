"""Errors raised to callers of a search run."""


class SearchError(RuntimeError):
    """Base class for search run failures."""


class ProfileNotFoundError(SearchError):
    """Profile does not exist or is not owned by the requesting user."""

    def __init__(self, profile_id: object):
        super().__init__(f"Search profile not found: {profile_id}")
        self.profile_id = profile_id


class PersistenceError(SearchError):
    """Signals and run record could not be committed. Nothing was written."""


class RunNotFoundError(SearchError):
    """Search run does not exist or is not owned by the requesting user."""

    def __init__(self, run_id: object):
        super().__init__(f"Search run not found: {run_id}")
        self.run_id = run_id
