"""Exception type for bootstrap failures that are not a failing command."""


class BootstrapError(Exception):
    """A fail-fast bootstrap step could not complete."""
