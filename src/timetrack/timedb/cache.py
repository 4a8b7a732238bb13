from __future__ import annotations
from dataclasses import dataclass, field


@dataclass
class RunCache:
    """Lookup shortcuts for a single batch transaction.

    Build a fresh one per transaction and drop it afterwards; other writers may
    change the store between batches.
    """
    email_to_user: dict[str, int] = field(default_factory=dict)
    # 0 means the title was looked up and no ticket exists
    title_to_ticket: dict[str, int] = field(default_factory=dict)
