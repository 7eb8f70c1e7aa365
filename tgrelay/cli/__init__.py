"""CLI module for tgrelay."""
