"""Query capability shared by storage backends.

Services depend on this protocol rather than on a concrete repository, so
slug assignment and reports can run against a fake collection in tests.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from storefront.services.pipeline import Record, Stage


class DocumentCollection(Protocol):
    async def find(self, conditions: Mapping[str, Any]) -> list[Record]:
        """Documents matching a filter (literal, regex, Ne, Exists values)."""
        ...

    async def aggregate(self, stages: Sequence[Stage]) -> list[Record]:
        """Run a pipeline over every document in the collection."""
        ...
