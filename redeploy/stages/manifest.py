"""Manifest update: replace the placeholder image reference in place."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from redeploy.errors import ManifestUpdateFailed

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yml", ".yaml")


def update_manifest(path: Path | str, placeholder: str, image: str) -> int:
    """Substitute every ``placeholder`` in ``path`` with ``image``.

    Returns the number of replacements. Zero means the file was left
    untouched, which makes a second run with the same image a no-op.
    YAML manifests are re-parsed before writing so a substitution never
    leaves an unloadable file behind.
    """
    if not placeholder:
        raise ValueError("Image placeholder must not be empty")
    if not image:
        raise ManifestUpdateFailed("No image reference given")

    path = Path(path)
    try:
        original = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestUpdateFailed(f"Cannot read manifest {path}: {e}") from e

    count = original.count(placeholder)
    if count == 0:
        logger.info("No '%s' in %s, nothing to update", placeholder, path)
        return 0

    updated = original.replace(placeholder, image)

    if path.suffix.lower() in _YAML_SUFFIXES:
        try:
            list(yaml.safe_load_all(updated))
        except yaml.YAMLError as e:
            raise ManifestUpdateFailed(
                f"Manifest {path} is not valid YAML after substitution", str(e)
            ) from e

    try:
        path.write_text(updated, encoding="utf-8")
    except OSError as e:
        raise ManifestUpdateFailed(f"Cannot write manifest {path}: {e}") from e

    logger.info("Replaced %d occurrence(s) of '%s' with '%s' in %s", count, placeholder, image, path)
    return count
