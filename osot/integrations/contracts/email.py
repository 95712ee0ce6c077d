from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    template: str                        # e.g. "verification", "admin_approval"
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class EmailClient(ABC):
    @abstractmethod
    async def send(self, message: EmailMessage) -> bool:
        """Deliver the message; return False (not raise) when delivery fails."""
        ...
