"""Data adapters."""

from .csv_loader import CSVDataLoader, list_universe_files, load_universe

__all__ = ["CSVDataLoader", "list_universe_files", "load_universe"]
