"""Two-way synchroniser between a local vault and a remote git-hosting repository."""

__version__ = "0.4.0"
