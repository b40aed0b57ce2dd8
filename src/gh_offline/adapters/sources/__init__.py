"""Source adapters for fetching remote records."""

from gh_offline.adapters.sources.github_source import GitHubSource

__all__ = ["GitHubSource"]
