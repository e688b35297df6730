"""
Subscription approval.

When a stranger asks to see our presence the session cannot decide on its
own. It creates an ApprovalTask and hands it to an ApprovalPolicy, which
resolves it (now or later) with accept or decline.
"""

from __future__ import annotations

import abc
import asyncio
from typing import TYPE_CHECKING, Callable, Optional

from rich.prompt import Confirm

from ._utils import console, logger

if TYPE_CHECKING:
    from ._models._jid import Jid


class ApprovalTask:
    """
    One outstanding subscription approval.

    ``resolve`` is single-shot: the first call reaches the session, later
    calls are ignored.
    """

    def __init__(
        self,
        jid: Jid,
        prompt: str,
        on_resolve: Callable[[ApprovalTask, bool], None],
    ) -> None:
        self.jid = jid
        self.prompt = prompt
        self._on_resolve = on_resolve
        self.resolved = False
        self.accepted: Optional[bool] = None

    def resolve(self, accepted: bool) -> bool:
        """
        Answer the request.

        Returns:
            True if this call resolved the task, False if it already was
        """
        if self.resolved:
            return False
        self.resolved = True
        self.accepted = accepted
        self._on_resolve(self, accepted)
        return True

    def accept(self) -> bool:
        return self.resolve(True)

    def decline(self) -> bool:
        return self.resolve(False)

    def __repr__(self) -> str:
        state = "pending" if not self.resolved else ("accepted" if self.accepted else "declined")
        return f"<ApprovalTask({self.jid}, {state})>"


# ============================================================================
# Policies
# ============================================================================


class ApprovalPolicy(abc.ABC):
    """Decides on subscription requests from unknown peers."""

    @abc.abstractmethod
    def request(self, task: ApprovalTask) -> None:
        """Start deciding; call ``task.resolve`` whenever the answer is known."""
        ...


class AutoApprove(ApprovalPolicy):
    """Accept every request."""

    def request(self, task: ApprovalTask) -> None:
        task.accept()


class AutoDecline(ApprovalPolicy):
    """Decline every request."""

    def request(self, task: ApprovalTask) -> None:
        task.decline()


class ManualApproval(ApprovalPolicy):
    """
    Leave requests open for the application to answer.

    Listen for the ``approval_requested`` notification and call
    ``session.resolve_approval(jid, accepted)`` (or keep the task).
    """

    def request(self, task: ApprovalTask) -> None:
        logger.info(f"Waiting for approval of {task.jid}")


class ConsoleApproval(ApprovalPolicy):
    """
    Ask on the terminal with a rich confirmation prompt.

    Inside a running event loop the prompt runs in the default executor so
    the connection keeps being served while the user thinks.
    """

    def __init__(self, default: bool = False) -> None:
        self.default = default

    def _ask(self, prompt: str) -> bool:
        return Confirm.ask(prompt, console=console, default=self.default)

    def request(self, task: ApprovalTask) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            task.resolve(self._ask(task.prompt))
            return

        future = loop.run_in_executor(None, self._ask, task.prompt)

        def done(fut: asyncio.Future) -> None:
            if fut.cancelled():
                return
            error = fut.exception()
            if error is not None:
                logger.warning(f"Approval prompt for {task.jid} failed: {error}")
                task.decline()
                return
            task.resolve(bool(fut.result()))

        future.add_done_callback(done)


__all__ = [
    "ApprovalTask",
    "ApprovalPolicy",
    "AutoApprove",
    "AutoDecline",
    "ManualApproval",
    "ConsoleApproval",
]
