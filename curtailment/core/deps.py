"""Dependency injection utilities."""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from curtailment.core.context import RunContext
from curtailment.core.exceptions import ConfigurationException
from curtailment.services.completeness import CompletenessService
from curtailment.services.summary_service import SummaryService


def get_context(request: Request) -> RunContext:
    """Run context built by the application lifespan."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise ConfigurationException("Application context is not initialised")
    return context


async def get_db(context: RunContext = Depends(get_context)) -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with context.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_summary_service(context: RunContext = Depends(get_context)) -> SummaryService:
    return context.summaries()


def get_completeness_service(context: RunContext = Depends(get_context)) -> CompletenessService:
    return context.completeness()
