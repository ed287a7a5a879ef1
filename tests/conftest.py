# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides settings, a fresh store and bus per test, mocked external
collaborators and sample producer payloads. No network I/O: every
external service is an AsyncMock or an in-process adapter.
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from thegrid.api.facade import GridRuntime, build_runtime
from thegrid.config.settings import Settings
from thegrid.events.bus import EventBus
from thegrid.integrations.base import (
    BaseChangelogStore,
    BaseCmsClient,
    BaseDiffService,
    BaseReleaseSummarizer,
    BaseRepositoryClient,
    Collaborators,
)
from thegrid.integrations.inbox import InMemoryNotificationInbox
from thegrid.integrations.log_notifier import LoggingChatNotifier
from thegrid.logging.context import clear_context
from thegrid.store.memory_store import MemoryPipelineStore


# === FIXTURES: Configuration and infrastructure ===


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers installed by setup_logging and any leftover log context."""
    yield
    grid_logger = logging.getLogger("thegrid")
    for handler in list(grid_logger.handlers):
        handler.close()
    grid_logger.handlers.clear()
    grid_logger.setLevel(logging.NOTSET)
    clear_context()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, cms_default_space_id="317084")


@pytest.fixture
def store() -> MemoryPipelineStore:
    return MemoryPipelineStore()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


# === FIXTURES: Collaborators ===


@pytest.fixture
def inbox() -> InMemoryNotificationInbox:
    return InMemoryNotificationInbox()


@pytest.fixture
def chat() -> LoggingChatNotifier:
    return LoggingChatNotifier()


@pytest.fixture
def cms() -> AsyncMock:
    client = AsyncMock(spec=BaseCmsClient)
    client.create_document.return_value = {"id": 9001, "slug": "landing-page"}
    client.update_document.return_value = {"id": 42, "slug": "about"}
    return client


@pytest.fixture
def changelog() -> AsyncMock:
    store = AsyncMock(spec=BaseChangelogStore)
    store.create_entry.return_value = {"id": "cl_1"}
    return store


@pytest.fixture
def diff_service() -> MagicMock:
    service = MagicMock(spec=BaseDiffService)
    service.generate_diff = AsyncMock(return_value={"changes": [{"path": "content.title"}]})
    service.summarize.return_value = "1 field changed"
    return service


@pytest.fixture
def repository() -> AsyncMock:
    client = AsyncMock(spec=BaseRepositoryClient)
    client.get_pull_request_commits.return_value = [
        {"sha": "a1", "message": "Fix bug"},
        {"sha": "b2", "message": "Add feature"},
    ]
    client.get_pull_request_details.return_value = {"title": "Release 1.2", "number": 7}
    return client


@pytest.fixture
def summarizer() -> AsyncMock:
    agent = AsyncMock(spec=BaseReleaseSummarizer)
    agent.summarize_commits.return_value = '"Fixed bug\\nAdded feature"'
    return agent


@pytest.fixture
def collaborators(
    inbox, chat, cms, changelog, diff_service, repository, summarizer
) -> Collaborators:
    return Collaborators(
        notifications=inbox,
        chat=chat,
        cms=cms,
        changelog=changelog,
        diff=diff_service,
        repository=repository,
        summarizer=summarizer,
    )


@pytest.fixture
def runtime(settings, collaborators, store, bus) -> GridRuntime:
    rt = build_runtime(settings=settings, collaborators=collaborators, store=store, bus=bus)
    yield rt
    rt.close()


# === FIXTURES: Producer payloads (wire format, camelCase) ===


@pytest.fixture
def figma_payload() -> dict[str, Any]:
    return {
        "figmaData": {"document": {}},
        "irfResult": {"sections": []},
        "storyblokResult": None,
        "finalStoryblokStory": {
            "name": "Landing Page",
            "slug": "landing-page",
            "content": {"component": "page", "body": []},
            "tag_list": ["marketing"],
        },
        "metadata": {
            "figmaFileName": "landing.fig",
            "componentCount": 5,
            "nodeCount": 120,
            "storyName": "Landing Page",
            "storySlug": "landing-page",
        },
    }


@pytest.fixture
def editor_payload() -> dict[str, Any]:
    return {
        "originalStoryblok": {"id": 42, "name": "About", "slug": "about", "content": {}},
        "irf": {"sections": []},
        "editedStoryblok": {
            "name": "About us",
            "slug": "about",
            "content": {"component": "page", "body": [{"component": "hero"}]},
            "tag_list": [],
            "is_startpage": False,
            "parent_id": 7,
            "position": 3,
        },
        "metadata": {
            "transformationTime": "4s",
            "originalComponentCount": 3,
            "finalComponentCount": 4,
            "storyName": "About",
            "storySlug": "about",
            "spaceId": 317084,
        },
    }


@pytest.fixture
def release_payload() -> dict[str, Any]:
    return {"repoOwner": "acme", "repoName": "web", "prNumber": 7}
