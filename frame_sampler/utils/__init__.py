"""Utilities package."""

from .io import cleanup_dir, create_tmp_dir, ensure_dir, list_files, load_json, save_json

__all__ = [
    "cleanup_dir",
    "create_tmp_dir",
    "ensure_dir",
    "list_files",
    "load_json",
    "save_json",
]
