"""
Topic voting service.

This package contains:
- Store adapters over Redis hashes (and an in-memory equivalent)
- The topic registry and the vote ledger (the core)
- The FastAPI application exposing them over HTTP
"""

from .domain import Ballot, Tally, VoteChoice
from .errors import (
    InvalidInput,
    LedgerContention,
    NotFound,
    StoreUnavailable,
    VotingError,
)
from .ledger import VoteLedger
from .observability import Instrumentation
from .registry import RegisteredTopic, TopicRegistry
from .store import MemoryStore, RedisStore, StoreAdapter

__all__ = [
    'Ballot',
    'Tally',
    'VoteChoice',
    'InvalidInput',
    'LedgerContention',
    'NotFound',
    'StoreUnavailable',
    'VotingError',
    'VoteLedger',
    'Instrumentation',
    'RegisteredTopic',
    'TopicRegistry',
    'MemoryStore',
    'RedisStore',
    'StoreAdapter',
]

__version__ = '1.0.0'
