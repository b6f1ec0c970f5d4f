from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Statistics:
    images_processed: int = 0
    failed_operations: int = 0
    files_sent: int = 0
    total_source_files: int = 0
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images_processed": self.images_processed,
            "failed_operations": self.failed_operations,
            "files_sent": self.files_sent,
            "total_source_files": self.total_source_files,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Statistics":
        return cls(
            images_processed=data.get("images_processed", 0),
            failed_operations=data.get("failed_operations", 0),
            files_sent=data.get("files_sent", 0),
            total_source_files=data.get("total_source_files", 0),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else _utcnow(),
        )


@dataclass
class ActivityLog:
    log_id: int
    action: str
    details: str
    status: str = "completed"
    filename: Optional[str] = None
    filesize: Optional[int] = None
    from_user: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_id": self.log_id,
            "action": self.action,
            "details": self.details,
            "status": self.status,
            "filename": self.filename,
            "filesize": self.filesize,
            "from_user": self.from_user,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityLog":
        return cls(
            log_id=data["log_id"],
            action=data["action"],
            details=data["details"],
            status=data.get("status", "completed"),
            filename=data.get("filename"),
            filesize=data.get("filesize"),
            from_user=data.get("from_user"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else _utcnow(),
        )
