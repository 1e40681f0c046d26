from __future__ import annotations

import stat
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from modelkeeper.models.asset import AssetDescriptor, AssetStatus, StatusSummary


def describe(descriptor: AssetDescriptor, model_root: Path) -> AssetStatus:
    """Stat one asset's destination. Never raises; unreadable means absent."""
    path = model_root / descriptor.relative_path
    exists = False
    size_bytes: int | None = None
    try:
        st = path.stat()
    except OSError:
        pass
    else:
        # Zero-byte files are leftovers from an interrupted write
        if stat.S_ISREG(st.st_mode) and st.st_size > 0:
            exists = True
            size_bytes = st.st_size
    return AssetStatus(
        id=descriptor.id,
        label=descriptor.label,
        path=str(path),
        exists=exists,
        size_bytes=size_bytes,
        optional=descriptor.optional,
        mmproj_id=descriptor.mmproj_id,
    )


def summarize(
    descriptors: Iterable[AssetDescriptor],
    model_root: Path,
    selected_ids: set[str],
) -> StatusSummary:
    assets = [describe(d, model_root) for d in descriptors]
    missing = [
        a.id for a in assets
        if a.id in selected_ids and not a.exists and not a.optional
    ]
    return StatusSummary(
        assets=assets,
        ready=bool(assets) and not missing,
        missing=missing,
        last_checked_at=datetime.now(timezone.utc),
    )
