# src/pipeline/registry.py — v2
"""Continuation registry: selects the post-approval behavior of a pipeline.

Continuations are registered under ``(type, source)``. A registration with
``source=None`` matches every source of that type and is used when no
exact pair is registered.
"""

from __future__ import annotations

import logging

from thegrid.pipeline.continuations.base import BaseContinuation

logger = logging.getLogger(__name__)


class UnhandledPipelineType(Exception):
    """Raised when no continuation matches a pipeline's (type, source)."""

    def __init__(self, pipeline_type: str, source: str, supported: list[str]) -> None:
        self.pipeline_type = pipeline_type
        self.source = source
        self.supported = supported
        super().__init__(
            f"No continuation for type={pipeline_type!r} source={source!r} "
            f"(supported: {', '.join(supported) or 'none'})"
        )


class ContinuationRegistry:
    """Registry of continuations keyed by (pipeline type, source)."""

    def __init__(self) -> None:
        self._continuations: dict[tuple[str, str | None], BaseContinuation] = {}

    def register(
        self, pipeline_type: str, source: str | None, continuation: BaseContinuation
    ) -> None:
        """Register ``continuation``; ``source=None`` registers a type-wide fallback."""
        key = (pipeline_type, source)
        if key in self._continuations:
            logger.warning("Overwriting continuation for %s", _label(key))
        self._continuations[key] = continuation
        logger.debug("Registered continuation '%s' for %s", continuation.name, _label(key))

    def unregister(self, pipeline_type: str, source: str | None) -> bool:
        """Remove a registration. Returns True if it existed."""
        return self._continuations.pop((pipeline_type, source), None) is not None

    def resolve(self, pipeline_type: str, source: str) -> BaseContinuation:
        """Return the continuation for ``(pipeline_type, source)``.

        Raises:
            UnhandledPipelineType: Neither the exact pair nor a type-wide
                fallback is registered.
        """
        continuation = self._continuations.get((pipeline_type, source))
        if continuation is None:
            continuation = self._continuations.get((pipeline_type, None))
        if continuation is None:
            raise UnhandledPipelineType(pipeline_type, source, self.supported)
        return continuation

    def has(self, pipeline_type: str, source: str) -> bool:
        try:
            self.resolve(pipeline_type, source)
        except UnhandledPipelineType:
            return False
        return True

    @property
    def supported(self) -> list[str]:
        """Sorted labels of the registered (type, source) pairs."""
        return sorted(_label(key) for key in self._continuations)

    def __len__(self) -> int:
        return len(self._continuations)


def default_registry() -> ContinuationRegistry:
    """Registry with the built-in CMS and changelog continuations."""
    from thegrid.pipeline.continuations.changelog import ChangelogContinuation
    from thegrid.pipeline.continuations.cms_create import CmsCreateContinuation
    from thegrid.pipeline.continuations.cms_update import CmsUpdateContinuation

    registry = ContinuationRegistry()
    registry.register("cms-publication", "figma-to-storyblok", CmsCreateContinuation())
    registry.register("cms-publication", "storyblok-editor", CmsUpdateContinuation())
    registry.register("changelog", None, ChangelogContinuation())
    return registry


def _label(key: tuple[str, str | None]) -> str:
    pipeline_type, source = key
    return f"{pipeline_type}/{source or '*'}"
