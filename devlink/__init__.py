"""Local cache and cross-linking of GitHub repositories and Azure DevOps pipelines."""

__version__ = "0.1.0"
