"""Wiring of the auth core for a running client."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from maybe_auth.config import AuthConfig
from maybe_auth.core.clock import Clock, default_clock
from maybe_auth.core.gate import RequestGate
from maybe_auth.core.orchestrator import AuthOrchestrator
from maybe_auth.core.session import SessionManager
from maybe_auth.core.store import CredentialRepository, build_repository
from maybe_auth.core.user_agent import UserAgent
from maybe_auth.device import DeviceInfoProvider

logger = logging.getLogger("maybe-auth.runtime")


@dataclass(frozen=True)
class AuthRuntime:
    """Fully wired components sharing one HTTP client."""

    config: AuthConfig
    repository: CredentialRepository
    orchestrator: AuthOrchestrator
    session: SessionManager
    gate: RequestGate


@asynccontextmanager
async def open_runtime(
    config: AuthConfig,
    *,
    user_agent: UserAgent | None = None,
    repository: CredentialRepository | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock = default_clock,
) -> AsyncIterator[AuthRuntime]:
    """Build, bootstrap and finally shut down an :class:`AuthRuntime`.

    *transport* lets tests substitute ``httpx.MockTransport``.
    """
    repository = repository or build_repository(config)
    devices = DeviceInfoProvider(repository.profile)
    async with httpx.AsyncClient(
        transport=transport, timeout=httpx.Timeout(config.http_timeout)
    ) as http:
        orchestrator = AuthOrchestrator(config, http, user_agent=user_agent, clock=clock)
        session = SessionManager(orchestrator, repository, devices, clock=clock)
        gate = RequestGate(
            session, http, base_url=config.api_base_url, timeout=config.http_timeout
        )
        runtime = AuthRuntime(
            config=config,
            repository=repository,
            orchestrator=orchestrator,
            session=session,
            gate=gate,
        )
        state = await session.bootstrap()
        logger.info("Auth runtime started in state %s", state.name)
        try:
            yield runtime
        finally:
            await session.shutdown()
            logger.info("Auth runtime stopped")
