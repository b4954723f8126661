import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

import discord

from .audit import log_decision
from .commands import MANAGED_COMMANDS, RESERVED_MARKER, ManagedCommand, parse_command, title_prefixes
from .discord_permissions import AccessPolicy, check_access
from .errors import (
    WRITE_UNCLASSIFIED,
    LookupFailure,
    PermissionDenied,
    TagNotFound,
    WriteRejected,
    WriteTimeout,
    classify_write_error,
    describe_rejection,
)
from .events import MessageEvent
from .gateway import ForumGateway
from .scope import ScopeConfig, ThreadContainer, command_in_scope
from .tags import applied_tags_from_payload, available_tags_from_payload, find_status_tag, reconcile_applied_tags
from .titles import apply_title_prefix


STATUS_IGNORED = "ignored"
STATUS_DENIED = "denied"
STATUS_LOOKUP_FAILED = "lookup_failed"
STATUS_TAG_MISSING = "tag_missing"
STATUS_TIMED_OUT = "timed_out"
STATUS_REJECTED = "rejected"
STATUS_FAILED = "failed"
STATUS_UPDATED = "updated"


@dataclass
class CommandOutcome:
    status: str
    command: str
    channel_id: int
    user_id: int
    new_title: Optional[str] = None
    applied_tags: Sequence[int] = ()
    detail: str = ""
    finished_at: float = field(default_factory=lambda: time.time())

    @property
    def mutated(self) -> bool:
        return self.status == STATUS_UPDATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "command": self.command,
            "channel_id": self.channel_id,
            "user_id": self.user_id,
            "new_title": self.new_title,
            "applied_tags": [str(t) for t in self.applied_tags],
            "detail": self.detail,
            "finished_at": self.finished_at,
        }


class CommandRouter:
    """
    Handles managed status commands posted inside forum threads.

    Per message: fetch the thread, check scope, check the author's access,
    fetch the parent forum's tag catalog, compute the new title and tag list,
    write both in one edit raced against a deadline, then acknowledge.
    """

    def __init__(
        self,
        gateway: ForumGateway,
        policy: AccessPolicy,
        scope: ScopeConfig,
        commands: Mapping[str, ManagedCommand] = MANAGED_COMMANDS,
        write_timeout: float = 10.0,
        marker: str = RESERVED_MARKER,
        audit_logger: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.policy = policy
        self.scope = scope
        self.commands = commands
        self.write_timeout = write_timeout
        self.marker = marker
        self.prefixes = title_prefixes(commands)
        self.logger = logging.getLogger("kotatsu.router")
        self.audit_logger = audit_logger or logging.getLogger("kotatsu.audit")
        # Writes that outlived their deadline; held so they are not collected mid-flight.
        self._late_writes: set[asyncio.Task] = set()

    def match(self, content: str) -> Optional[ManagedCommand]:
        return parse_command(content, self.commands, self.marker)

    async def handle(self, event: MessageEvent) -> Optional[CommandOutcome]:
        command = self.match(event.content)
        if command is None:
            return None
        try:
            outcome = await self._run(event, command)
        except Exception as exc:
            self.logger.exception("Unhandled error processing .%s in %s", command.key, event.channel_id)
            outcome = self._outcome(STATUS_FAILED, command, event, detail=str(exc))
        if outcome.status != STATUS_IGNORED:
            log_decision(self.audit_logger, outcome)
        return outcome

    def _outcome(self, status: str, command: ManagedCommand, event: MessageEvent, **extra: Any) -> CommandOutcome:
        return CommandOutcome(status=status, command=command.key, channel_id=event.channel_id, user_id=event.author_id, **extra)

    async def _run(self, event: MessageEvent, command: ManagedCommand) -> CommandOutcome:
        try:
            thread_payload = await self.gateway.fetch_channel_payload(event.channel_id)
            container = ThreadContainer.from_payload(thread_payload)
        except LookupFailure as exc:
            self.logger.warning("Failed to fetch channel %s: %s", event.channel_id, exc)
            return self._outcome(STATUS_LOOKUP_FAILED, command, event, detail=str(exc))

        if not command_in_scope(container, event.author_is_bot, self.scope):
            return self._outcome(STATUS_IGNORED, command, event)

        try:
            await self._authorize(event.author_id, container)
        except LookupFailure as exc:
            self.logger.warning("Permission check failed for user %s in %s: %s", event.author_id, container.id, exc)
            return self._outcome(STATUS_LOOKUP_FAILED, command, event, detail=f"permission lookup: {exc}")
        except PermissionDenied as exc:
            await self._reply(event.channel_id, f"<@{exc.user_id}> you don't have permission to run that command.")
            return self._outcome(STATUS_DENIED, command, event, detail=f"policy={self.policy.mode}")

        try:
            if container.parent_id is None:
                raise LookupFailure(f"Thread {container.id} has no parent forum")
            parent_payload = await self.gateway.fetch_channel_payload(container.parent_id)
            catalog = available_tags_from_payload(parent_payload)
            applied = applied_tags_from_payload(thread_payload)
        except LookupFailure as exc:
            self.logger.warning("Failed to read tags for thread %s: %s", container.id, exc)
            return self._outcome(STATUS_LOOKUP_FAILED, command, event, detail=f"tag lookup: {exc}")

        try:
            status_tag = find_status_tag(catalog, command.status_tag_name)
        except TagNotFound as exc:
            await self._reply(
                event.channel_id,
                f"Tag {exc.tag_name} not found in the forum. Please create it first.",
            )
            return self._outcome(STATUS_TAG_MISSING, command, event, detail=exc.tag_name)

        new_tags = reconcile_applied_tags(catalog, status_tag.id, applied, self.marker)
        new_title = apply_title_prefix(container.name, command.title_prefix, self.prefixes)

        try:
            await self._commit(container.id, new_title, new_tags, reason=f"{self.marker}{command.key} by {event.author_id}")
        except WriteTimeout as exc:
            self.logger.warning("Thread %s update timed out after %.1fs", container.id, exc.timeout)
            await self._reply(
                event.channel_id,
                f"Updating the thread is taking longer than {exc.timeout:.0f}s. "
                "The change may still go through, so check the thread before running the command again.",
            )
            return self._outcome(
                STATUS_TIMED_OUT, command, event, new_title=new_title, applied_tags=new_tags, detail=str(exc)
            )
        except WriteRejected as exc:
            self.logger.warning("Thread %s update rejected: %s", container.id, exc)
            await self._reply(event.channel_id, describe_rejection(exc))
            return self._outcome(
                STATUS_REJECTED, command, event, new_title=new_title, applied_tags=new_tags, detail=f"{exc.kind}: {exc.detail}"
            )

        await self._reply(event.channel_id, f"Updated thread: {new_title}")
        return self._outcome(STATUS_UPDATED, command, event, new_title=new_title, applied_tags=new_tags)

    async def _authorize(self, user_id: int, container: ThreadContainer) -> None:
        if not await check_access(self.gateway, user_id, container, self.policy):
            raise PermissionDenied(user_id)

    async def _commit(self, thread_id: int, name: str, applied_tags: Sequence[int], reason: str) -> None:
        """
        Race the edit against the deadline. On timeout the edit keeps running;
        its eventual result is drained by a callback and only logged.
        """
        task = asyncio.create_task(
            self.gateway.edit_thread(thread_id, name=name, applied_tags=list(applied_tags), reason=reason),
            name=f"edit_thread:{thread_id}",
        )
        done, _ = await asyncio.wait({task}, timeout=self.write_timeout)
        if task not in done:
            self._late_writes.add(task)
            task.add_done_callback(self._drain_late_write)
            raise WriteTimeout(self.write_timeout)
        if task.cancelled():
            raise WriteRejected(WRITE_UNCLASSIFIED, detail="edit was cancelled")
        exc = task.exception()
        if exc is not None:
            raise classify_write_error(exc) from exc

    def _drain_late_write(self, task: asyncio.Task) -> None:
        self._late_writes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.warning("Late %s finished with error: %s", task.get_name(), exc)
        else:
            self.logger.info("Late %s completed after the deadline", task.get_name())

    async def _reply(self, channel_id: int, content: str) -> None:
        try:
            await self.gateway.send_message(channel_id, content)
        except (discord.HTTPException, discord.RateLimited, LookupFailure) as exc:
            self.logger.warning("Failed to send reply to %s: %s", channel_id, exc)
