"""Topic creation and lookup."""
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from .domain import EMPTY_LEDGER
from .errors import InvalidInput, NotFound
from .observability import Instrumentation, topics_created
from .store import StoreAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredTopic:
    """Result of a successful registration."""
    name: str
    voting_url: str


class TopicRegistry:
    """
    Creates topics together with their empty vote ledger.

    Registration writes ``topics[name]`` and ``votes[name]`` through
    ``StoreAdapter.set_many``. On Redis that is one MULTI/EXEC transaction.
    On a store without atomic batches a crash between the two writes leaves
    a topic with no ledger entry; VoteLedger treats such a topic as having
    zero ballots and recreates the entry on the next vote.
    """

    def __init__(
        self,
        store: StoreAdapter,
        voting_base_url: str,
        topics_key: str = "topics",
        votes_key: str = "votes",
        instrumentation: Optional[Instrumentation] = None,
    ):
        self.store = store
        self.voting_base_url = voting_base_url.rstrip("/")
        self.topics_key = topics_key
        self.votes_key = votes_key
        self.instrumentation = instrumentation or Instrumentation()

    def voting_url(self, name: str) -> str:
        return f"{self.voting_base_url}/{quote(name, safe='')}"

    async def register(self, name: Optional[str], description: Optional[str]) -> RegisteredTopic:
        """
        Register a topic and open its ledger.

        Re-registering an existing name overwrites the description and resets
        the ledger to empty.

        Raises:
            InvalidInput: name or description missing or blank, or name
                contains a slash
            StoreUnavailable: store write failed (earlier writes are not rolled back)
        """
        with self.instrumentation.operation("create-topic", topic=name or ""):
            if not name or not name.strip() or not description or not description.strip():
                logger.warning("Topic and description are required")
                raise InvalidInput("Topic and description are required")
            if "/" in name:
                logger.warning(f"Rejected topic name containing '/': {name}")
                raise InvalidInput("Topic name must not contain '/'", topic=name)

            logger.info(f"Creating topic: {name}")
            await self.store.set_many([
                (self.topics_key, name, description),
                (self.votes_key, name, EMPTY_LEDGER),
            ])
            topics_created.inc()

            voting_url = self.voting_url(name)
            logger.info(f"Topic created successfully: {name}")
            return RegisteredTopic(name=name, voting_url=voting_url)

    async def describe(self, name: str) -> str:
        """
        Return a topic's description.

        Raises:
            NotFound: topic was never registered
        """
        with self.instrumentation.operation("get-topic-description", topic=name):
            description = await self.store.get(self.topics_key, name)
            if description is None:
                logger.warning(f"Topic not found: {name}")
                raise NotFound(f"Topic not found: {name}", topic=name)
            return description

    async def exists(self, name: str) -> bool:
        return await self.store.get(self.topics_key, name) is not None
