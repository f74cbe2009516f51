from dataclasses import dataclass, field
from enum import Enum
from pydantic import BaseModel, TypeAdapter, field_validator
from typing import Any, Dict, List, Optional


class IndexEntry(BaseModel):
    """Single entry in the repository index describing a stored blob."""
    id: str                          # uuid4, not derived from content
    filename: str                    # "<id>.blob"
    length: int

    @field_validator("length")
    @classmethod
    def validate_length(cls, v: int):
        """Blob lengths are byte counts."""
        if v < 0:
            raise ValueError("length must be non-negative")
        return v


IndexList = TypeAdapter(List[IndexEntry])


class Severity(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class CheckResult:
    id: str
    severity: Severity
    message: str
    path: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "message": self.message,
            "path": self.path,
            "details": self.details or None,
        }
