"""
Domain data structures for topics, ballots and tallies.

This module contains:
- VoteChoice: the two recognised ballot choices
- Ballot: one voter's recorded choice, as stored in the ledger
- Tally: counts derived from a ledger at read time
- Ledger encoding helpers (JSON text stored in the votes map)
"""

import json
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Dict, List, Optional


class VoteChoice(str, Enum):
    """Valid vote choices."""
    AGREE = "agree"
    NOT_AGREE = "not_agree"


@dataclass(frozen=True)
class Ballot:
    """
    A single recorded vote.

    Attributes:
        name: Voter name as submitted
        vote: Raw choice string; one of VoteChoice unless the ledger
            runs with strict choices disabled
    """
    name: str
    vote: str

    @property
    def choice(self) -> Optional[VoteChoice]:
        """Parsed choice, or None for a value outside VoteChoice."""
        try:
            return VoteChoice(self.vote)
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Ballot':
        """Create Ballot from a stored ledger record."""
        return cls(name=data["name"], vote=data["vote"])


@dataclass
class Tally:
    """Vote counts for one topic, partitioned by choice."""
    topic: str
    agree: List[Ballot] = field(default_factory=list)
    not_agree: List[Ballot] = field(default_factory=list)

    @property
    def count_agree(self) -> int:
        return len(self.agree)

    @property
    def count_not_agree(self) -> int:
        return len(self.not_agree)

    @classmethod
    def from_ballots(cls, topic: str, ballots: List[Ballot]) -> 'Tally':
        """Partition ballots by exact choice; unrecognised values are left out."""
        return cls(
            topic=topic,
            agree=[b for b in ballots if b.choice is VoteChoice.AGREE],
            not_agree=[b for b in ballots if b.choice is VoteChoice.NOT_AGREE],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Response shape used by the results endpoint."""
        return {
            "topic": self.topic,
            "countAgree": self.count_agree,
            "countNotAgree": self.count_not_agree,
            "votes": {
                "agree": [b.to_dict() for b in self.agree],
                "notAgree": [b.to_dict() for b in self.not_agree],
            },
        }


def encode_ledger(ballots: List[Ballot]) -> str:
    """Serialize a ballot sequence to the JSON text kept in the votes map."""
    return json.dumps([b.to_dict() for b in ballots])


def decode_ledger(raw: str) -> List[Ballot]:
    """
    Parse a stored ballot sequence.

    Raises:
        ValueError: if the text is not a JSON list of {name, vote} records
    """
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("ledger value is not a list")
    try:
        return [Ballot.from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed ballot record: {e}") from e


EMPTY_LEDGER = encode_ledger([])
