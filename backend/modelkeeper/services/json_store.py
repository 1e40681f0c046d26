from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os


async def read_json(path: Path) -> Any:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return json.loads(await f.read())


async def write_json_atomic(path: Path, data: Any, indent: int = 2) -> None:
    """Replace *path* with *data* without ever exposing a half-written file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=indent))
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        try:
            await aiofiles.os.remove(tmp_path)
        except OSError:
            pass
        raise
