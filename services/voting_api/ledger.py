"""
Vote ledger: append-only ballot sequences and tallies.

Each topic's ballots live as one JSON array in field ``<topic>`` of the votes
map. The store offers no atomic list append, so every append is a
read-modify-write of that whole value. Two strategies are available:

naive
    Read, append, write back with a plain ``set``. Two concurrent appends to
    the same topic can both read N ballots and both write N+1, so one ballot
    is silently lost.

optimistic
    Read, append, then ``compare_and_set`` against the exact value read. A
    concurrent writer makes the write fail; the append re-reads and retries
    up to ``max_attempts`` times before giving up with LedgerContention.
    Every acknowledged ballot is kept.

The ledger takes no locks of its own; the store is the only shared state.
"""
import logging
from typing import List, Optional, Tuple

from .domain import Ballot, Tally, VoteChoice, decode_ledger, encode_ledger
from .errors import InvalidInput, LedgerContention, NotFound, StoreUnavailable
from .observability import Instrumentation, votes_recorded
from .store import StoreAdapter

logger = logging.getLogger(__name__)

NAIVE = "naive"
OPTIMISTIC = "optimistic"
STRATEGIES = (NAIVE, OPTIMISTIC)


class VoteLedger:
    """Read-modify-write protocol for ballots, plus read-time tallies."""

    def __init__(
        self,
        store: StoreAdapter,
        topics_key: str = "topics",
        votes_key: str = "votes",
        strategy: str = OPTIMISTIC,
        max_attempts: int = 10,
        strict_choices: bool = True,
        instrumentation: Optional[Instrumentation] = None,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown ledger strategy: {strategy}")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.topics_key = topics_key
        self.votes_key = votes_key
        self.strategy = strategy
        self.max_attempts = max_attempts
        self.strict_choices = strict_choices
        self.instrumentation = instrumentation or Instrumentation()

    @classmethod
    def from_settings(cls, store: StoreAdapter, settings, instrumentation=None) -> 'VoteLedger':
        return cls(
            store,
            topics_key=settings.TOPICS_KEY,
            votes_key=settings.VOTES_KEY,
            strategy=settings.LEDGER_APPEND_STRATEGY,
            max_attempts=settings.LEDGER_MAX_ATTEMPTS,
            strict_choices=settings.STRICT_VOTE_CHOICES,
            instrumentation=instrumentation,
        )

    def make_ballot(self, voter_name: Optional[str], choice: Optional[str]) -> Ballot:
        """
        Validate a submitted vote.

        Raises:
            InvalidInput: name or choice missing, or choice unrecognised in
                strict mode
        """
        if not voter_name or not voter_name.strip() or not choice:
            logger.warning("Vote and name are required")
            raise InvalidInput("Vote and name are required")
        ballot = Ballot(name=voter_name, vote=choice)
        if self.strict_choices and ballot.choice is None:
            allowed = ", ".join(c.value for c in VoteChoice)
            logger.warning(f"Rejected unrecognised vote: {choice}")
            raise InvalidInput(f"Vote must be one of: {allowed}", vote=choice)
        return ballot

    async def _read(self, topic: str) -> Tuple[Optional[str], List[Ballot]]:
        """
        Read the raw ledger value and its ballots.

        An absent ledger reads as empty only when the topic itself is
        registered; that covers a registration interrupted between its two
        writes.

        Raises:
            NotFound: neither ledger entry nor topic exists
            StoreUnavailable: store failure or undecodable ledger value
        """
        raw = await self.store.get(self.votes_key, topic)
        if raw is None:
            if await self.store.get(self.topics_key, topic) is None:
                logger.warning(f"Topic not found: {topic}")
                raise NotFound(f"Topic not found: {topic}", topic=topic)
            logger.warning(f"Topic {topic} has no ledger entry, treating as empty")
            return None, []
        try:
            return raw, decode_ledger(raw)
        except ValueError as e:
            logger.error(f"Corrupt ledger for topic {topic}: {e}")
            raise StoreUnavailable(f"Corrupt ledger for topic {topic}", topic=topic) from e

    async def append_ballot(
        self, topic: str, voter_name: Optional[str], choice: Optional[str]
    ) -> Ballot:
        """
        Append one ballot to a topic's ledger.

        Raises:
            InvalidInput: see make_ballot
            NotFound: topic not registered
            LedgerContention: optimistic strategy ran out of attempts
            StoreUnavailable: store failure
        """
        with self.instrumentation.operation("process-vote", topic=topic):
            ballot = self.make_ballot(voter_name, choice)
            logger.info(f"Processing vote for topic: {topic} - Name: {voter_name}, Vote: {choice}")

            if self.strategy == NAIVE:
                await self._append_naive(topic, ballot)
            else:
                await self._append_optimistic(topic, ballot)

            votes_recorded.labels(choice=ballot.vote if ballot.choice else "other").inc()
            logger.info(f"Vote counted for topic: {topic} - Name: {voter_name}, Vote: {choice}")
            return ballot

    async def _append_naive(self, topic: str, ballot: Ballot) -> None:
        _, ballots = await self._read(topic)
        ballots.append(ballot)
        await self.store.set(self.votes_key, topic, encode_ledger(ballots))

    async def _append_optimistic(self, topic: str, ballot: Ballot) -> None:
        for attempt in range(1, self.max_attempts + 1):
            raw, ballots = await self._read(topic)
            ballots.append(ballot)
            if await self.store.compare_and_set(self.votes_key, topic, raw, encode_ledger(ballots)):
                return
            logger.warning(
                f"Concurrent write on topic {topic}, retrying append "
                f"(attempt {attempt}/{self.max_attempts})"
            )
        raise LedgerContention(
            f"Could not append vote to topic {topic} after {self.max_attempts} attempts",
            topic=topic,
        )

    async def tally(self, topic: str) -> Tally:
        """
        Count a topic's ballots by choice.

        Raises:
            NotFound: topic not registered
            StoreUnavailable: store failure
        """
        with self.instrumentation.operation("get-topic-results", topic=topic):
            logger.info(f"Fetching results for topic: {topic}")
            _, ballots = await self._read(topic)
            tally = Tally.from_ballots(topic, ballots)
            logger.info(
                f"Results fetched for topic: {topic} - "
                f"Agree: {tally.count_agree}, Not Agree: {tally.count_not_agree}"
            )
            return tally
