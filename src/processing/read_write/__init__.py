"""Module for reading and writing data files."""

from .read_write import load_data, write_data

__all__ = ["load_data", "write_data"]
