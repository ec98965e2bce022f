"""
Thumbnail cache record
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class ThumbnailRecord:
    unit_id: str
    payload: str
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'unit_id': self.unit_id,
            'payload': self.payload,
            'generated_at': self.generated_at.isoformat(),
        }
