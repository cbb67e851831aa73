from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation. Identity comes from the auth layer."""
    user_id: str
    department: Optional[str] = None
