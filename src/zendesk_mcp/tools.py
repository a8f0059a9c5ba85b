"""Zendesk tools: static descriptors, handlers and the dispatching registry.

Tools are not related by behaviour, only by being invokable by name, so the
registry is a flat lookup table from name to (descriptor, handler). Every handler
has the same shape: ``async (ToolContext, arguments) -> JSON-compatible value``.

Descriptors are advisory. Each handler validates its own arguments through a
pydantic model and raises :class:`InvalidArgumentError` for unusable values.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from functools import partial
from typing import Any, Literal, TypeVar

import pydantic_core
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zendesk_mcp.client import ZendeskClient
from zendesk_mcp.enrichment import fan_out
from zendesk_mcp.exceptions import (
    ConfigurationError,
    InvalidArgumentError,
    MissingArgumentsError,
    UnknownToolError,
    ZendeskMCPError,
)
from zendesk_mcp.pagination import collect_pages
from zendesk_mcp.settings import ZendeskSettings
from zendesk_mcp.types import CallToolResult, JsonSchema, TextContent, Tool, ToolAnnotations

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, float | None, str | None], Awaitable[None]]

PRIORITIES = ["low", "normal", "high", "urgent"]
STATUSES = ["new", "open", "pending", "hold", "solved", "closed"]

Priority = Literal["low", "normal", "high", "urgent"]
Status = Literal["new", "open", "pending", "hold", "solved", "closed"]


@dataclass
class ToolContext:
    """What a tool handler receives besides its arguments."""

    client: ZendeskClient | None
    settings: ZendeskSettings
    progress: ProgressCallback | None = None

    @property
    def zendesk(self) -> ZendeskClient:
        if self.client is None:
            raise ConfigurationError()
        return self.client

    async def report_progress(self, progress: float, total: float | None = None, message: str | None = None) -> None:
        if self.progress is not None:
            await self.progress(progress, total, message)


ToolHandler = Callable[[ToolContext, dict[str, Any]], Awaitable[Any]]


# Argument models

ArgsT = TypeVar("ArgsT", bound="ToolArguments")


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class QueryArgs(ToolArguments):
    query: str = Field(min_length=1)


class TicketArgs(ToolArguments):
    ticket_id: int = Field(gt=0)


class CreateTicketArgs(ToolArguments):
    subject: str = Field(min_length=1)
    comment: str = Field(min_length=1)
    priority: Priority | None = None
    tags: list[str] | None = None


class UpdateTicketArgs(TicketArgs):
    status: Status | None = None
    priority: Priority | None = None
    subject: str | None = None
    tags: list[str] | None = None


class AddCommentArgs(TicketArgs):
    comment: str = Field(min_length=1)
    is_public: bool = True


class UserArgs(ToolArguments):
    user_id: int = Field(gt=0)


class OrganizationArgs(ToolArguments):
    org_id: int = Field(gt=0)


class LocalizedArgs(ToolArguments):
    locale: str | None = None


class SearchArticlesArgs(LocalizedArgs):
    query: str = Field(min_length=1)


class ArticleArgs(LocalizedArgs):
    article_id: int = Field(gt=0)


class SectionArgs(LocalizedArgs):
    section_id: int = Field(gt=0)


def parse_arguments(model: type[ArgsT], arguments: dict[str, Any]) -> ArgsT:
    try:
        return model.model_validate(arguments)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}" for error in exc.errors()
        )
        raise InvalidArgumentError(f"Invalid arguments: {problems}") from exc


# Help Center helpers


def rewrite_article_url(url: str | None, origin: str, public_domain: str | None) -> str | None:
    """Swap the ``{subdomain}.zendesk.com`` origin of ``url`` for the public Help Center domain.

    Only the origin changes; the path is kept. URLs on another origin are left alone.
    """
    if not url or not public_domain or not url.startswith(origin):
        return url
    return f"https://{public_domain}{url[len(origin):]}"


def is_public_article(article: dict[str, Any]) -> bool:
    """Drafts and articles restricted to a user segment are not publicly visible."""
    return not article.get("draft") and article.get("user_segment_id") is None


def merge_article(
    summary: dict[str, Any],
    detail: dict[str, Any],
    *,
    origin: str,
    public_domain: str | None,
) -> dict[str, Any] | None:
    article = detail.get("article") or {}
    if not is_public_article(article):
        return None
    return {
        "id": summary.get("id"),
        "title": summary.get("title") or article.get("title"),
        "url": rewrite_article_url(summary.get("html_url") or article.get("html_url"), origin, public_domain),
        "snippet": summary.get("snippet"),
        "body": article.get("body"),
        "section_id": article.get("section_id"),
        "label_names": article.get("label_names", []),
        "locale": article.get("locale"),
        "created_at": article.get("created_at"),
        "updated_at": article.get("updated_at"),
    }


def _with_public_url(article: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
    if "html_url" not in article:
        return article
    url = rewrite_article_url(article["html_url"], ctx.zendesk.origin, ctx.settings.public_domain)
    return {**article, "html_url": url}


def _page_progress(ctx: ToolContext, noun: str) -> Callable[[int, int], Awaitable[None]] | None:
    if ctx.progress is None:
        return None

    async def on_page(pages: int, items: int) -> None:
        await ctx.report_progress(pages, None, f"Fetched {items} {noun} from {pages} page(s)")

    return on_page


# Handlers


async def search_tickets(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(QueryArgs, arguments)
    return await ctx.zendesk.search("ticket", args.query)


async def get_ticket(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(TicketArgs, arguments)
    client = ctx.zendesk
    response = await client.get_ticket(args.ticket_id)
    comments = await collect_pages(
        client,
        f"/tickets/{args.ticket_id}/comments.json?sort_order=asc",
        "comments",
        on_page=_page_progress(ctx, "comments"),
    )
    return {
        "ticket": response.get("ticket"),
        "comments": comments,
        "total_comments": len(comments),
    }


async def create_ticket(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(CreateTicketArgs, arguments)
    return await ctx.zendesk.create_ticket(args.subject, args.comment, args.priority, args.tags)


async def update_ticket(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(UpdateTicketArgs, arguments)
    updates = args.model_dump(include={"status", "priority", "subject", "tags"}, exclude_none=True)
    if not updates:
        raise InvalidArgumentError("Invalid arguments: provide at least one of status, priority, subject, tags")
    return await ctx.zendesk.update_ticket(args.ticket_id, updates)


async def add_comment(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(AddCommentArgs, arguments)
    return await ctx.zendesk.add_comment(args.ticket_id, args.comment, args.is_public)


async def get_ticket_comments(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(TicketArgs, arguments)
    comments = await collect_pages(
        ctx.zendesk,
        f"/tickets/{args.ticket_id}/comments.json?sort_order=asc",
        "comments",
        on_page=_page_progress(ctx, "comments"),
    )
    return {"comments": comments, "count": len(comments)}


async def search_users(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(QueryArgs, arguments)
    return await ctx.zendesk.search("user", args.query)


async def get_user(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(UserArgs, arguments)
    return await ctx.zendesk.get_user(args.user_id)


async def search_organizations(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(QueryArgs, arguments)
    return await ctx.zendesk.search("organization", args.query)


async def get_organization(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(OrganizationArgs, arguments)
    return await ctx.zendesk.get_organization(args.org_id)


async def search_articles(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(SearchArticlesArgs, arguments)
    client = ctx.zendesk
    settings = ctx.settings
    locale = args.locale or settings.default_locale

    response = await client.search_articles(args.query, locale)
    hits: list[dict[str, Any]] = response.get("results") or []

    outcome = await fan_out(
        hits,
        lambda hit: client.get_article(hit["id"], locale),
        partial(merge_article, origin=client.origin, public_domain=settings.public_domain),
        candidate_limit=settings.article_candidate_limit,
        result_limit=settings.article_result_limit,
        max_concurrency=settings.article_fetch_concurrency,
        key=lambda hit: hit.get("id"),
    )
    if outcome.failures:
        logger.info(
            "search_articles %r: %d of %d candidate(s) failed to load",
            args.query,
            len(outcome.failures),
            outcome.candidates,
        )

    payload: dict[str, Any] = {
        "results": outcome.items,
        "count": response.get("count"),
        "page": response.get("page"),
        "page_count": response.get("page_count"),
        "omitted": outcome.omitted,
    }
    if not outcome.items:
        if not hits:
            payload["message"] = f"No Help Center articles matched '{args.query}'."
        else:
            payload["message"] = (
                f"{outcome.candidates} matching article(s) were found, but none could be returned "
                "(they are not public or could not be loaded)."
            )
    return payload


async def get_article(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(ArticleArgs, arguments)
    locale = args.locale or ctx.settings.default_locale
    response = await ctx.zendesk.get_article(args.article_id, locale)
    return {"article": _with_public_url(response.get("article") or {}, ctx)}


async def get_articles_by_section(ctx: ToolContext, arguments: dict[str, Any]) -> Any:
    args = parse_arguments(SectionArgs, arguments)
    locale = args.locale or ctx.settings.default_locale
    articles = await collect_pages(
        ctx.zendesk,
        f"/help_center/{locale}/sections/{args.section_id}/articles.json",
        "articles",
        on_page=_page_progress(ctx, "articles"),
    )
    return {
        "articles": [_with_public_url(article, ctx) for article in articles],
        "count": len(articles),
    }


# Descriptors

_READ_ONLY = ToolAnnotations(read_only_hint=True, open_world_hint=True)
_WRITE = ToolAnnotations(read_only_hint=False, destructive_hint=False, open_world_hint=True)

_LOCALE_PROPERTY = {
    "type": "string",
    "description": "Help Center locale, e.g. 'ja' or 'en-us' (defaults to the server's configured locale)",
}


def _schema(properties: dict[str, Any], required: list[str]) -> JsonSchema:
    return JsonSchema(properties=properties, required=required)


def _query_tool(name: str, description: str, example: str) -> Tool:
    return Tool(
        name=name,
        description=description,
        input_schema=_schema({"query": {"type": "string", "description": f"Search query (e.g., {example})"}}, ["query"]),
        annotations=_READ_ONLY,
    )


def _id_tool(name: str, description: str, id_name: str, id_description: str, *, localized: bool = False) -> Tool:
    properties: dict[str, Any] = {id_name: {"type": "number", "description": id_description}}
    if localized:
        properties["locale"] = _LOCALE_PROPERTY
    return Tool(name=name, description=description, input_schema=_schema(properties, [id_name]), annotations=_READ_ONLY)


TOOL_DEFINITIONS: list[tuple[Tool, ToolHandler]] = [
    (
        _query_tool(
            "search_tickets",
            "Search for Zendesk tickets using a query string. Query can include status, priority, tags, etc.",
            "'status:open priority:high', 'tag:urgent'",
        ),
        search_tickets,
    ),
    (
        _id_tool(
            "get_ticket",
            "Get detailed information about a specific ticket including ALL comment history "
            "(follows pagination to retrieve the complete conversation thread)",
            "ticket_id",
            "The ID of the ticket to retrieve",
        ),
        get_ticket,
    ),
    (
        Tool(
            name="create_ticket",
            description="Create a new Zendesk ticket",
            input_schema=_schema(
                {
                    "subject": {"type": "string", "description": "The subject/title of the ticket"},
                    "comment": {"type": "string", "description": "The initial comment/description for the ticket"},
                    "priority": {
                        "type": "string",
                        "description": "Priority level (low, normal, high, urgent)",
                        "enum": PRIORITIES,
                    },
                    "tags": {"type": "array", "items": {"type": "string"}, "description": "Tags to add to the ticket"},
                },
                ["subject", "comment"],
            ),
            annotations=_WRITE,
        ),
        create_ticket,
    ),
    (
        Tool(
            name="update_ticket",
            description="Update an existing Zendesk ticket",
            input_schema=_schema(
                {
                    "ticket_id": {"type": "number", "description": "The ID of the ticket to update"},
                    "status": {
                        "type": "string",
                        "description": "New status (new, open, pending, hold, solved, closed)",
                        "enum": STATUSES,
                    },
                    "priority": {
                        "type": "string",
                        "description": "New priority (low, normal, high, urgent)",
                        "enum": PRIORITIES,
                    },
                    "subject": {"type": "string", "description": "New subject/title"},
                    "tags": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Tags to set (replaces existing tags)",
                    },
                },
                ["ticket_id"],
            ),
            annotations=ToolAnnotations(read_only_hint=False, destructive_hint=True, open_world_hint=True),
        ),
        update_ticket,
    ),
    (
        Tool(
            name="add_comment",
            description="Add a comment to an existing Zendesk ticket",
            input_schema=_schema(
                {
                    "ticket_id": {"type": "number", "description": "The ID of the ticket"},
                    "comment": {"type": "string", "description": "The comment text to add"},
                    "is_public": {
                        "type": "boolean",
                        "description": "Whether the comment is public (visible to end users) or internal",
                        "default": True,
                    },
                },
                ["ticket_id", "comment"],
            ),
            annotations=_WRITE,
        ),
        add_comment,
    ),
    (
        _id_tool(
            "get_ticket_comments",
            "Get all comments for a specific Zendesk ticket",
            "ticket_id",
            "The ID of the ticket",
        ),
        get_ticket_comments,
    ),
    (
        _query_tool("search_users", "Search for Zendesk users", "'email:user@example.com', 'name:John'"),
        search_users,
    ),
    (
        _id_tool(
            "get_user",
            "Get detailed information about a specific Zendesk user by ID",
            "user_id",
            "The ID of the user to retrieve",
        ),
        get_user,
    ),
    (
        _query_tool("search_organizations", "Search for Zendesk organizations", "'name:Acme Corp'"),
        search_organizations,
    ),
    (
        _id_tool(
            "get_organization",
            "Get detailed information about a specific Zendesk organization by ID",
            "org_id",
            "The ID of the organization to retrieve",
        ),
        get_organization,
    ),
    (
        Tool(
            name="search_articles",
            description=(
                "Search for Help Center articles using a query string. "
                "Use this to find relevant knowledge base articles."
            ),
            input_schema=_schema(
                {
                    "query": {
                        "type": "string",
                        "description": "Search query to find articles (e.g., 'CRM integration', 'CSV upload')",
                    },
                    "locale": _LOCALE_PROPERTY,
                },
                ["query"],
            ),
            annotations=_READ_ONLY,
        ),
        search_articles,
    ),
    (
        _id_tool(
            "get_article",
            "Get detailed information about a specific Help Center article by ID",
            "article_id",
            "The ID of the article to retrieve",
            localized=True,
        ),
        get_article,
    ),
    (
        _id_tool(
            "get_articles_by_section",
            "Get all articles within a specific Help Center section",
            "section_id",
            "The ID of the section",
            localized=True,
        ),
        get_articles_by_section,
    ),
]


# Registry


@dataclass(frozen=True)
class RegisteredTool:
    descriptor: Tool
    handler: ToolHandler


class ToolRegistry:
    """Name → handler lookup table with a uniform invocation contract.

    Usage:
        registry = create_registry()
        result = await registry.invoke("get_ticket", {"ticket_id": 1}, ctx)
    """

    def __init__(self, tools: Iterable[tuple[Tool, ToolHandler]] = ()) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        for descriptor, handler in tools:
            self.add(descriptor, handler)

    def add(self, descriptor: Tool, handler: ToolHandler) -> None:
        if descriptor.name in self._tools:
            raise ValueError(f"Tool already registered: {descriptor.name}")
        self._tools[descriptor.name] = RegisteredTool(descriptor, handler)

    def list(self) -> list[Tool]:
        """All descriptors, in registration order."""
        return [tool.descriptor for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any] | None, context: ToolContext) -> Any:
        """Run a tool and return its raw result. Errors propagate to the caller."""
        if context.client is None:
            raise ConfigurationError()
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        if arguments is None:
            raise MissingArgumentsError()
        return await tool.handler(context, arguments)

    async def invoke(self, name: str, arguments: dict[str, Any] | None, context: ToolContext) -> CallToolResult:
        """Run a tool and wrap the outcome in a :class:`CallToolResult`. Never raises."""
        try:
            result = await self.execute(name, arguments, context)
        except (UnknownToolError, MissingArgumentsError, ConfigurationError) as exc:
            logger.info("Rejected call to %s: %s", name, exc)
            return _error_result(str(exc))
        except ZendeskMCPError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return _error_result(f"Error: {exc}")
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            return _error_result(f"Error: {exc}")

        text = pydantic_core.to_json(result, fallback=str, indent=2).decode()
        return CallToolResult(content=[TextContent(text=text)])


def _error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=message)], is_error=True)


def create_registry() -> ToolRegistry:
    """A registry holding every Zendesk tool, in declaration order."""
    return ToolRegistry(TOOL_DEFINITIONS)
