# src/integrations/base.py — v1
"""Abstract collaborator interfaces used by the orchestrator.

Concrete CMS, changelog, repository and summarizer clients live outside
this package; the orchestrator only depends on these contracts. Every
method may raise; callers decide whether a failure is fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field

NotificationType = Literal["alert", "info", "success", "warning", "error"]


class MissingCollaboratorError(Exception):
    """Raised when a flow needs a collaborator that was not configured."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Collaborator not configured: {name}")


# === Data contracts ===


class CmsDocumentSpec(BaseModel):
    """Fields sent when creating a CMS document."""

    name: str
    slug: str
    content: Any = None
    published: bool = False
    tag_list: list[str] = Field(default_factory=list)
    is_startpage: bool = False
    parent_id: int | str | None = None


class ChangelogEntryInput(BaseModel):
    repo_owner: str
    repo_name: str
    pr_number: str
    title: str | None = None
    summary: str
    created_by: str


class DiffOptions(BaseModel):
    include_visual_diff: bool = True
    include_markdown_diff: bool = True
    ignore_properties: list[str] = Field(
        default_factory=lambda: ["_uid", "_editable", "updated_at"]
    )


# === Collaborator interfaces ===


class BaseCmsClient(ABC):
    """Headless CMS client."""

    @abstractmethod
    async def create_document(
        self, spec: CmsDocumentSpec, *, space_id: str | None = None
    ) -> dict[str, Any]:
        """Create a document (as draft unless ``spec.published``)."""

    @abstractmethod
    async def update_document(
        self,
        document_id: str,
        patch: dict[str, Any],
        *,
        force_update: bool = False,
        publish: bool = False,
        space_id: str | None = None,
    ) -> dict[str, Any]:
        """Update an existing document."""


class BaseChangelogStore(ABC):
    @abstractmethod
    async def create_entry(self, entry: ChangelogEntryInput) -> dict[str, Any]:
        """Persist a changelog entry."""


class BaseNotificationClient(ABC):
    """In-app notification inbox."""

    @abstractmethod
    async def create_notification(
        self, user_id: str, notification_type: NotificationType, message: str
    ) -> None:
        """Deliver an in-app notification to ``user_id``."""


class BaseChatNotifier(ABC):
    """Team chat channel."""

    @abstractmethod
    async def notify(self, text: str) -> None:
        """Post a plain-text message."""


class BaseDiffService(ABC):
    @abstractmethod
    async def generate_diff(
        self, original: dict[str, Any], edited: dict[str, Any], options: DiffOptions
    ) -> Any:
        """Compute a structured diff between two documents."""

    @abstractmethod
    def summarize(self, diff: Any) -> str:
        """Render a short human-readable summary of ``diff``."""


class BaseRepositoryClient(ABC):
    """Source-code host (pull requests and commits)."""

    @abstractmethod
    async def get_pull_request_commits(
        self, owner: str, repo: str, pr_number: str
    ) -> list[dict[str, Any]]:
        """Return the commits of a pull request."""

    @abstractmethod
    async def get_pull_request_details(
        self, owner: str, repo: str, pr_number: str
    ) -> dict[str, Any]:
        """Return pull request details (title, body, ...)."""


class BaseReleaseSummarizer(ABC):
    @abstractmethod
    async def summarize_commits(
        self, commits: list[dict[str, Any]], title: str | None = None
    ) -> str:
        """Produce a release summary from commits."""


@dataclass
class Collaborators:
    """Bundle of configured collaborators.

    Only the chat and notification channels are always present; the rest
    are required by specific flows and looked up through ``require``.
    """

    notifications: BaseNotificationClient
    chat: BaseChatNotifier
    cms: BaseCmsClient | None = None
    changelog: BaseChangelogStore | None = None
    diff: BaseDiffService | None = None
    repository: BaseRepositoryClient | None = None
    summarizer: BaseReleaseSummarizer | None = None

    def require(self, name: str) -> Any:
        """Return the collaborator ``name`` or raise MissingCollaboratorError."""
        value = getattr(self, name, None)
        if value is None:
            raise MissingCollaboratorError(name)
        return value
