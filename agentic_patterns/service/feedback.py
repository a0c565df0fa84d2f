"""
Human-feedback channels.

Module: agentic_patterns/service/feedback.py

A channel is the outbound side of ``HumanInputAgent``: the agent notifies it
with a rendered prompt, receives a ticket, then suspends on the ticket until a
human answers. Three channels are provided:

- ``ConsoleFeedbackChannel``: stdin/stdout, with a fixed fallback answer when
  no interactive terminal is attached
- ``StaticFeedbackChannel``: always answers with the same string
- ``FeedbackManager``: answers arrive through the HTTP API
"""

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

import anyio
from pydantic import BaseModel, Field

from .errors import FeedbackCancelledError, FeedbackTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_FEEDBACK_RESPONSE = "Good response with clear communication"
UNAVAILABLE_FEEDBACK_RESPONSE = "Unable to collect feedback"


class FeedbackChannel(ABC):
    """Contract for delivering a prompt to a human and collecting the reply."""

    @abstractmethod
    async def request(self, prompt: str, invocation_id: Optional[str] = None) -> str:
        """
        Notify the human of a pending question.

        Returns:
            Ticket identifying the request
        """

    @abstractmethod
    async def await_response(self, ticket: str) -> str:
        """Suspend until the human's answer for ``ticket`` is available."""

    async def abandon(self, ticket: str) -> None:
        """Called when the waiting agent gives up on a ticket."""
        return None


class StaticFeedbackChannel(FeedbackChannel):
    """Channel that answers every request with a fixed response."""

    def __init__(self, response: str = DEFAULT_FEEDBACK_RESPONSE) -> None:
        self.response = response
        self.prompts: List[str] = []

    async def request(self, prompt: str, invocation_id: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        return str(uuid4())

    async def await_response(self, ticket: str) -> str:
        return self.response


class ConsoleFeedbackChannel(FeedbackChannel):
    """
    Console channel.

    Prints the prompt and reads one line from stdin on a worker thread. When
    stdin is not an interactive terminal the default response is returned; a
    failed read (closed or detached stdin) answers ``UNAVAILABLE_FEEDBACK_RESPONSE``.
    """

    def __init__(
        self,
        default_response: str = DEFAULT_FEEDBACK_RESPONSE,
        interactive: Optional[bool] = None,
    ) -> None:
        self.default_response = default_response
        self._interactive = interactive
        self._prompts: Dict[str, str] = {}

    @property
    def interactive(self) -> bool:
        if self._interactive is not None:
            return self._interactive
        stdin = sys.stdin
        return bool(stdin is not None and stdin.isatty())

    async def request(self, prompt: str, invocation_id: Optional[str] = None) -> str:
        ticket = str(uuid4())
        self._prompts[ticket] = prompt
        print("\n=== Human feedback requested ===")
        print(prompt)
        return ticket

    async def await_response(self, ticket: str) -> str:
        self._prompts.pop(ticket, None)
        if not self.interactive:
            logger.info("No interactive console available, using default feedback")
            return self.default_response

        try:
            line = await anyio.to_thread.run_sync(input, "Your feedback: ")
        except (EOFError, OSError) as e:
            logger.warning(f"Could not read feedback from console: {e!r}")
            return UNAVAILABLE_FEEDBACK_RESPONSE
        return line.strip() or self.default_response


class FeedbackStatus(str, Enum):
    """Feedback request status."""

    PENDING = "pending"
    ANSWERED = "answered"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class FeedbackRequest(BaseModel):
    """A question waiting for (or answered by) a human reviewer."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    invocation_id: Optional[str] = None
    prompt: str
    status: FeedbackStatus = FeedbackStatus.PENDING
    requested_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = None
    response: Optional[str] = None
    responder_id: Optional[str] = None
    responded_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class FeedbackManager(FeedbackChannel):
    """
    API-driven feedback channel.

    Features:
    - Pending requests listed for reviewers
    - Answers and cancellations wake the waiting agent immediately
    - Optional expiry, enforced by a background cleanup task
    """

    def __init__(
        self,
        expires_in_seconds: Optional[float] = None,
        history_limit: int = 1000,
    ) -> None:
        """
        Initialize feedback manager.

        Args:
            expires_in_seconds: Lifetime of a pending request (None = no expiry)
            history_limit: Maximum number of resolved requests kept
        """
        self.expires_in_seconds = expires_in_seconds
        self.history_limit = history_limit
        self.pending_requests: Dict[str, FeedbackRequest] = {}
        self.history: List[FeedbackRequest] = []
        self._events: Dict[str, asyncio.Event] = {}
        self._cleanup_task: Optional[asyncio.Task[None]] = None

    async def start(self) -> None:
        """Start background cleanup task."""
        if self.expires_in_seconds is not None:
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_requests())
        logger.info("Feedback manager started")

    async def stop(self) -> None:
        """Stop background tasks and cancel anything still pending."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        for request_id in list(self.pending_requests):
            await self.cancel(request_id, reason="Service shutting down")
        logger.info("Feedback manager stopped")

    async def request(self, prompt: str, invocation_id: Optional[str] = None) -> str:
        expires_at = None
        if self.expires_in_seconds is not None:
            expires_at = datetime.utcnow() + timedelta(seconds=self.expires_in_seconds)

        feedback_request = FeedbackRequest(
            invocation_id=invocation_id,
            prompt=prompt,
            expires_at=expires_at,
        )
        self.pending_requests[feedback_request.id] = feedback_request
        self._events[feedback_request.id] = asyncio.Event()

        logger.info(
            f"Created feedback request {feedback_request.id} "
            f"for invocation {invocation_id}"
        )
        return feedback_request.id

    async def await_response(self, ticket: str) -> str:
        """
        Wait for a reviewer's answer.

        Raises:
            FeedbackCancelledError: If the request was cancelled
            FeedbackTimeoutError: If the request expired
            FeedbackCancelledError: If the ticket is unknown
        """
        request = await self.get_request(ticket)
        if request is None:
            raise FeedbackCancelledError(f"Feedback request {ticket} not found")

        event = self._events.get(ticket)
        if event is not None and request.status == FeedbackStatus.PENDING:
            await event.wait()

        self._events.pop(ticket, None)

        if request.status == FeedbackStatus.ANSWERED:
            return request.response or ""
        if request.status == FeedbackStatus.CANCELLED:
            raise FeedbackCancelledError(
                f"Feedback request {ticket} cancelled: {request.cancellation_reason or 'no reason'}"
            )
        raise FeedbackTimeoutError(f"Feedback request {ticket} expired")

    async def abandon(self, ticket: str) -> None:
        request = self.pending_requests.get(ticket)
        if request is not None:
            self._resolve(ticket, FeedbackStatus.EXPIRED)
            logger.info(f"Feedback request {ticket} abandoned by waiting agent")
        self._events.pop(ticket, None)

    async def get_request(self, request_id: str) -> Optional[FeedbackRequest]:
        """Get a feedback request by ID, pending or resolved."""
        if request_id in self.pending_requests:
            return self.pending_requests[request_id]

        for request in self.history:
            if request.id == request_id:
                return request

        return None

    async def list_pending(self, invocation_id: Optional[str] = None) -> List[FeedbackRequest]:
        """List pending requests, oldest first."""
        requests = list(self.pending_requests.values())
        if invocation_id:
            requests = [r for r in requests if r.invocation_id == invocation_id]
        requests.sort(key=lambda r: r.requested_at)
        return requests

    async def respond(
        self, request_id: str, response: str, responder_id: Optional[str] = None
    ) -> FeedbackRequest:
        """
        Answer a pending request.

        Raises:
            ValueError: If the request is not found or already resolved
        """
        request = self._require_pending(request_id)

        if request.expires_at and datetime.utcnow() > request.expires_at:
            self._resolve(request_id, FeedbackStatus.EXPIRED)
            raise ValueError(f"Feedback request {request_id} has expired")

        request.response = response
        request.responder_id = responder_id
        request.responded_at = datetime.utcnow()
        self._resolve(request_id, FeedbackStatus.ANSWERED)

        logger.info(f"Feedback request {request_id} answered by {responder_id or 'anonymous'}")
        return request

    async def cancel(self, request_id: str, reason: Optional[str] = None) -> FeedbackRequest:
        """
        Cancel a pending request; the waiting agent fails.

        Raises:
            ValueError: If the request is not found or already resolved
        """
        request = self._require_pending(request_id)
        request.cancellation_reason = reason
        self._resolve(request_id, FeedbackStatus.CANCELLED)

        logger.info(f"Feedback request {request_id} cancelled")
        return request

    def _require_pending(self, request_id: str) -> FeedbackRequest:
        request = self.pending_requests.get(request_id)
        if request is None:
            for resolved in self.history:
                if resolved.id == request_id:
                    raise ValueError(
                        f"Feedback request {request_id} already {resolved.status.value}"
                    )
            raise ValueError(f"Feedback request {request_id} not found")
        return request

    def _resolve(self, request_id: str, status: FeedbackStatus) -> None:
        """Set the final status, move to history and wake the waiter."""
        request = self.pending_requests.pop(request_id, None)
        if request is None:
            return

        request.status = status
        self.history.append(request)
        if len(self.history) > self.history_limit:
            self.history = self.history[-(self.history_limit // 2):]

        event = self._events.get(request_id)
        if event is not None:
            event.set()

    async def _cleanup_expired_requests(self) -> None:
        """Background task expiring overdue requests."""
        while True:
            try:
                await asyncio.sleep(1.0)

                now = datetime.utcnow()
                expired_ids = [
                    request_id
                    for request_id, request in self.pending_requests.items()
                    if request.expires_at and now > request.expires_at
                ]

                for request_id in expired_ids:
                    self._resolve(request_id, FeedbackStatus.EXPIRED)
                    logger.info(f"Feedback request {request_id} expired")

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in feedback cleanup task: {str(e)}")
