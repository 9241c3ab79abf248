"""Validation utilities for dirsql inputs."""
from __future__ import annotations
import os

from dirsql.core.errors import UsageError


class ValidationError(UsageError):
    """Exception raised for validation failures."""
    pass


def validate_directory(path: str, base: str = '') -> str:
    """Resolve ``path`` (``~`` expanded, relative to ``base``) to an existing directory."""
    if not path:
        raise ValidationError("directory path is empty")
    expanded = os.path.expanduser(path)
    if not os.path.isabs(expanded) and base:
        expanded = os.path.join(base, expanded)
    resolved = os.path.abspath(expanded)
    if not os.path.exists(resolved):
        raise ValidationError(f"Directory not found: {path}")
    if not os.path.isdir(resolved):
        raise ValidationError(f"Not a directory: {path}")
    if not os.access(resolved, os.R_OK | os.X_OK):
        raise ValidationError(f"Directory not readable: {path}")
    return resolved


def validate_output_path(filepath: str, create_dirs: bool = False) -> None:
    """Validate that output path is writable."""
    if not filepath:
        return

    directory = os.path.dirname(filepath)
    if directory and not os.path.exists(directory):
        if create_dirs:
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise ValidationError(f"Failed to create directory: {e}")
        else:
            raise ValidationError(f"Output directory does not exist: {directory}")

    if directory and not os.access(directory, os.W_OK):
        raise ValidationError(f"Output directory not writable: {directory}")
    if os.path.isdir(filepath):
        raise ValidationError(f"Output path is a directory: {filepath}")
