"""Network reachability monitor.

Periodically probes the sync server with a TCP connect and reports
reachability transitions to a callback. The orchestrator uses the
offline -> online edge to kick off a sync cycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ReachabilityCallback = Callable[[bool], Any]


def probe_target(base_url: str, probe_host: str = "", probe_port: int = 0) -> tuple[str, int]:
    """Resolve the host/port to probe, defaulting to the server URL's."""
    parsed = urlparse(base_url)
    host = probe_host or parsed.hostname or ""
    if probe_port:
        port = probe_port
    elif parsed.port:
        port = parsed.port
    else:
        port = 443 if parsed.scheme == "https" else 80
    return host, port


class ConnectivityMonitor:
    """Background reachability observer.

    Args:
        host: Host to probe
        port: TCP port to probe
        on_change: Called with the new state on every transition (and once
            with the first observation)
        check_interval: Seconds between probes
        probe_timeout: TCP connect timeout in seconds
    """

    def __init__(
        self,
        host: str,
        port: int,
        on_change: ReachabilityCallback,
        *,
        check_interval: float = 30.0,
        probe_timeout: float = 5.0,
    ) -> None:
        self._host = host
        self._port = port
        self._on_change = on_change
        self._check_interval = check_interval
        self._probe_timeout = probe_timeout
        self._online: bool | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def online(self) -> bool | None:
        """Last observed reachability, None before the first probe."""
        return self._online

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def probe(self) -> bool:
        """Attempt one TCP connect to the target."""
        if not self._host:
            return False
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._probe_timeout,
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    async def check_once(self) -> bool:
        """Probe and report a transition if reachability changed."""
        online = await self.probe()
        if online != self._online:
            self._online = online
            logger.info(
                "Network %s (%s:%d)",
                "reachable" if online else "unreachable",
                self._host,
                self._port,
            )
            result = self._on_change(online)
            if asyncio.iscoroutine(result):
                await result
        return online

    def start(self) -> None:
        """Start the background probe loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop the probe loop."""
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.check_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Reachability check failed", exc_info=True)
            await asyncio.sleep(self._check_interval)
