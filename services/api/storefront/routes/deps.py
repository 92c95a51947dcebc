"""Request-scoped dependencies.

Process-wide clients are created in the application lifespan and stored on
app.state; routes receive them through these providers.
"""

from collections.abc import AsyncGenerator

from fastapi import Request

from storefront.services.mail import MailDispatcher
from storefront.stores.postgres import Database
from storefront.stores.redis import ReportCache
from storefront.stores.store_repository import StoreRepository


async def get_repository(request: Request) -> AsyncGenerator[StoreRepository, None]:
    """One session (one transaction) per request."""
    db: Database = request.app.state.db
    async with db.session() as session:
        yield StoreRepository(session)


def get_report_cache(request: Request) -> ReportCache | None:
    return getattr(request.app.state, "report_cache", None)


def get_mailer(request: Request) -> MailDispatcher:
    return request.app.state.mailer
