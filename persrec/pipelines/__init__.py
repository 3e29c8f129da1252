"""Command-line pipelines (holdout evaluation)."""
