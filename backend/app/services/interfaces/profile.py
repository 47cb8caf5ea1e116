"""
Profile completeness collaborator interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProfileCompleteness:
    missing_fields: list[str] = field(default_factory=list)
    percent: int = 100
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    @property
    def missing_labels(self) -> list[str]:
        return [self.labels.get(name, name) for name in self.missing_fields]


class ProfileProvider(ABC):
    @abstractmethod
    async def check_completeness(self, user_id: str) -> ProfileCompleteness:
        """Raises NotFoundError for unknown users."""
