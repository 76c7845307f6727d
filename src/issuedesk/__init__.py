"""IssueDesk - local-first GitHub Issues/Labels sync with GitHub App authentication."""

__version__ = "0.1.0"
