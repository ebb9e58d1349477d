"""Client models for lending domain."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Client:
    """Borrower identity, as far as the lending core needs it."""

    client_id: str
    full_name: str
    created_at: datetime
