"""
Message bus wire entities.

DeviceCommand is published once per job on ``printer/{device_id}/commands``.
StatusEvent is what printers send back. Neither is stored.

Wire formats (JSON objects):
    command: {"job_id", "file_url", "user_id", "timestamp"}
    status:  {"job_id", "status", "error"?}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class DeviceCommand:
    """Instruction for a printer to fetch and print a file."""

    job_id: str
    file_url: str
    user_id: str
    timestamp: datetime

    def to_payload(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "file_url": self.file_url,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload())


@dataclass(frozen=True)
class StatusEvent:
    """Status report from a printer for one job."""

    job_id: str
    status: str
    """Raw reported status; validated by the dispatcher."""

    error: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Union[str, bytes, Dict[str, Any]]) -> "StatusEvent":
        """
        Parse an inbound status payload.

        Raises:
            ValueError: If the payload is not a JSON object with a
                non-empty job_id and a status
        """
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        if isinstance(payload, str):
            payload = json.loads(payload)

        if not isinstance(payload, dict):
            raise ValueError("Status payload must be a JSON object")

        job_id = payload.get("job_id")
        status = payload.get("status")
        if not isinstance(job_id, str) or not job_id:
            raise ValueError("Status payload is missing job_id")
        if status is None:
            raise ValueError("Status payload is missing status")

        error = payload.get("error")
        return cls(
            job_id=job_id,
            status=status,
            error=str(error) if error is not None else None,
        )
