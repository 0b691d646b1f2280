"""Remote fetch collaborators."""

from .azure_az import AzureAzPipelineFetcher
from .github_gh import GithubGhRepositoryFetcher

__all__ = ["AzureAzPipelineFetcher", "GithubGhRepositoryFetcher"]
