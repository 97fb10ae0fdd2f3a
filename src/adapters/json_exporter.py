"""JSON export of device lists.

Why JSON:
- Home-automation tooling consumes the device ids and local keys from it.
- Keeps a record of what was linked without querying the cloud again.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from core.domain.models import DeviceRecord


def export_devices_json(*, devices: Iterable[DeviceRecord], output_path: Path, include_raw: bool = False) -> Path:
    """Write devices as a UTF-8 JSON array, ordered by id.

    `raw` (the untouched cloud payload) is left out unless asked for.
    """

    exclude = None if include_raw else {"raw"}
    records = sorted(devices, key=lambda device: device.id)
    payload = [device.model_dump(mode="json", exclude=exclude) for device in records]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
        handle.write("\n")
    return output_path
