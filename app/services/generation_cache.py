"""
Generation cache for premium artifacts.

At most one stored artifact per (user_key, analysis_id, kind). A cache hit
never calls the generator. A miss calls it once, validates the output, and
stores it. Invalid output is never stored, so the next request retries.

    cache = GenerationCache(db, locks, timeout_seconds=60)
    artifact, was_cached = await cache.get_or_generate(
        user_key, analysis_id, "protection_plan", generator, parser
    )
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.locks import GenerationLocks
from app.models import Analysis, GeneratedArtifact
from app.services.errors import NotFoundError, ResponseShapeError, UpstreamError
from app.services.utils import snippet

logger = structlog.get_logger()

Generator = Callable[[Analysis], Awaitable[str]]
Parser = Callable[[str], Any]


class ArtifactNotFoundError(NotFoundError):
    """The source analysis does not exist."""


class UpstreamGenerationError(UpstreamError):
    """The generator raised or timed out."""


class ArtifactShapeError(ResponseShapeError):
    """The generator returned text that failed parsing or validation."""


def cache_key(user_key: str, analysis_id: str, kind: str) -> str:
    return f"{kind}:{user_key}:{analysis_id}"


class GenerationCache:
    def __init__(
        self,
        db: AsyncSession,
        locks: GenerationLocks,
        timeout_seconds: Optional[float] = 60.0,
    ):
        self.db = db
        self.locks = locks
        self.timeout_seconds = timeout_seconds

    async def find(
        self, user_key: str, analysis_id: str, kind: str
    ) -> Optional[GeneratedArtifact]:
        # Read errors propagate: without the cache check we cannot promise at-most-once
        result = await self.db.execute(
            select(GeneratedArtifact).where(
                GeneratedArtifact.user_key == user_key,
                GeneratedArtifact.analysis_id == analysis_id,
                GeneratedArtifact.kind == kind,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_generate(
        self,
        user_key: str,
        analysis_id: str,
        kind: str,
        generator: Generator,
        parser: Parser,
        request_params: Optional[dict] = None,
    ) -> tuple[Any, bool]:
        """
        Return (artifact, was_cached).

        STEPS
        -----
        1. Cached row -> return it
        2. Take the per-key lock and look again (another request may have
           just finished)
        3. Load the analysis (404 if missing)
        4. Call the generator once, bounded by timeout_seconds (502 on error)
        5. Parse + validate (422 on failure, nothing stored)
        6. Store best-effort and return
        """
        existing = await self.find(user_key, analysis_id, kind)
        if existing is not None:
            return existing.payload, True

        key = cache_key(user_key, analysis_id, kind)
        async with self.locks.hold(key):
            existing = await self.find(user_key, analysis_id, kind)
            if existing is not None:
                logger.info("generation_cache.coalesced", kind=kind, analysis_id=analysis_id)
                return existing.payload, True

            analysis = await self.db.get(Analysis, analysis_id)
            if analysis is None:
                raise ArtifactNotFoundError("Analysis not found.")

            raw_text = await self._generate(generator, analysis, kind)

            try:
                artifact = parser(raw_text)
            except ValueError as e:
                logger.warning(
                    "generation_cache.invalid_output",
                    kind=kind,
                    analysis_id=analysis_id,
                    error=str(e),
                )
                raise ArtifactShapeError(
                    f"Failed to parse generated {kind.replace('_', ' ')}. Raw: {snippet(raw_text)}"
                ) from e

            await self._store(user_key, analysis_id, kind, artifact, request_params)
            return artifact, False

    async def _generate(self, generator: Generator, analysis: Analysis, kind: str) -> str:
        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(generator(analysis), timeout=self.timeout_seconds)
            return await generator(analysis)
        except asyncio.TimeoutError as e:
            logger.error("generation_cache.timeout", kind=kind, timeout=self.timeout_seconds)
            raise UpstreamGenerationError(
                f"Generation timed out after {self.timeout_seconds:g}s"
            ) from e
        except Exception as e:
            logger.error("generation_cache.generator_failed", kind=kind, error=str(e))
            raise UpstreamGenerationError(f"Generation failed: {e}") from e

    async def _store(
        self,
        user_key: str,
        analysis_id: str,
        kind: str,
        artifact: Any,
        request_params: Optional[dict],
    ) -> None:
        """Persist the artifact. Failures are logged; the caller still gets the artifact."""
        row = GeneratedArtifact(
            user_key=user_key,
            analysis_id=analysis_id,
            kind=kind,
            payload=artifact,
            request_params=request_params,
        )
        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "generation_cache.store_failed",
                kind=kind,
                analysis_id=analysis_id,
                error=str(e),
            )
