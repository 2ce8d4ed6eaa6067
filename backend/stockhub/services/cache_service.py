# Overview: Invalidation of rendered inventory caches owned by the UI layer.

from __future__ import annotations

from pathlib import Path

from flask import current_app


def invalidate_inventory_caches() -> int:
    """
    Delete the configured cache files. Missing files are fine.

    Returns how many files were removed; OS errors are logged, never raised.
    """
    removed = 0
    for raw_path in current_app.config.get("INVENTORY_CACHE_FILES") or []:
        path = Path(raw_path)
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            current_app.logger.warning("Could not invalidate cache %s: %s", path, exc)
    return removed
