"""
Ticket Store Client
===================

Boundary to the helpdesk's ticket CRUD service. The pipeline only reads
ticket text, attaches system comments and writes assignment fields; ticket
persistence itself lives in the helpdesk.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from helpdesk_intel.config import settings
from helpdesk_intel.core import ResourceNotFoundException, TicketStoreException
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TicketRecord:
    """Read model of a helpdesk ticket."""
    id: str
    title: str
    description: str
    category: str
    priority: str
    status: str = "open"
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    assigned_team_id: Optional[int] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class TicketComment:
    """Comment on a ticket thread."""
    content: str
    is_system: bool = False
    author_id: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None


class ITicketStore(ABC):
    """Interface for the external ticket store."""

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> TicketRecord:
        """Raises ResourceNotFoundException if missing."""

    @abstractmethod
    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> None:
        """Write ticket fields (e.g. assignment)."""

    @abstractmethod
    async def create_comment(self, ticket_id: str, content: str, is_system: bool) -> TicketComment:
        """Attach a comment to the ticket thread."""

    @abstractmethod
    async def get_comments(self, ticket_id: str) -> List[TicketComment]:
        """Comment thread, oldest first."""


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class HttpTicketStore(ITicketStore):
    """
    REST client for the helpdesk ticket API.

    Endpoints:
        GET   /api/tickets/{id}
        PATCH /api/tickets/{id}
        GET   /api/tickets/{id}/comments
        POST  /api/tickets/{id}/comments
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        headers = {"Accept": "application/json"}
        token = token or settings.ticket_store_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.ticket_store_url or "",
            headers=headers,
            timeout=timeout or settings.ticket_store_timeout_seconds
        )

    async def _request(self, method: str, path: str, ticket_id: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TicketStoreException(f"{method} {path} failed: {e}")

        if response.status_code == 404:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if response.status_code >= 400:
            raise TicketStoreException(
                f"{method} {path} returned {response.status_code}",
                {"body": response.text[:500]}
            )
        return response

    @staticmethod
    def _comment(data: dict) -> TicketComment:
        return TicketComment(
            id=str(data["id"]) if data.get("id") is not None else None,
            content=data.get("content", ""),
            is_system=bool(data.get("isSystem", False)),
            author_id=str(data["userId"]) if data.get("userId") is not None else None,
            created_at=_parse_datetime(data.get("createdAt"))
        )

    async def get_ticket(self, ticket_id: str) -> TicketRecord:
        response = await self._request("GET", f"/api/tickets/{ticket_id}", ticket_id)
        data = response.json()
        return TicketRecord(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            category=data.get("category", ""),
            priority=data.get("priority", ""),
            status=data.get("status", "open"),
            created_at=_parse_datetime(data.get("createdAt")),
            resolved_at=_parse_datetime(data.get("resolvedAt")),
            assigned_team_id=data.get("assignedTeamId"),
            created_by=str(data["createdBy"]) if data.get("createdBy") is not None else None
        )

    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> None:
        payload = {_camel(key): value for key, value in fields.items()}
        await self._request("PATCH", f"/api/tickets/{ticket_id}", ticket_id, json=payload)

    async def create_comment(self, ticket_id: str, content: str, is_system: bool) -> TicketComment:
        response = await self._request(
            "POST",
            f"/api/tickets/{ticket_id}/comments",
            ticket_id,
            json={"content": content, "isSystem": is_system}
        )
        return self._comment(response.json())

    async def get_comments(self, ticket_id: str) -> List[TicketComment]:
        response = await self._request("GET", f"/api/tickets/{ticket_id}/comments", ticket_id)
        return [self._comment(item) for item in response.json()]

    async def close(self) -> None:
        await self._client.aclose()


@dataclass
class InMemoryTicketStore(ITicketStore):
    """Process-local ticket store for development."""
    tickets: Dict[str, TicketRecord] = field(default_factory=dict)
    comments: Dict[str, List[TicketComment]] = field(default_factory=dict)
    updates: List[tuple] = field(default_factory=list)

    def add_ticket(self, ticket: TicketRecord, comments: Optional[List[TicketComment]] = None) -> None:
        self.tickets[ticket.id] = ticket
        self.comments[ticket.id] = list(comments or [])

    async def get_ticket(self, ticket_id: str) -> TicketRecord:
        if ticket_id not in self.tickets:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return self.tickets[ticket_id]

    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> None:
        ticket = await self.get_ticket(ticket_id)
        known = {k: v for k, v in fields.items() if k in TicketRecord.__dataclass_fields__}
        self.tickets[ticket_id] = replace(ticket, **known)
        self.updates.append((ticket_id, dict(fields)))

    async def create_comment(self, ticket_id: str, content: str, is_system: bool) -> TicketComment:
        await self.get_ticket(ticket_id)
        comment = TicketComment(content=content, is_system=is_system)
        self.comments.setdefault(ticket_id, []).append(comment)
        return comment

    async def get_comments(self, ticket_id: str) -> List[TicketComment]:
        await self.get_ticket(ticket_id)
        return list(self.comments.get(ticket_id, []))


__all__ = [
    "TicketRecord",
    "TicketComment",
    "ITicketStore",
    "HttpTicketStore",
    "InMemoryTicketStore",
]
