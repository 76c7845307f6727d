"""Command-line interface for IssueDesk."""
