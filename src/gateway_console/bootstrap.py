from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx
from loguru import logger

from gateway_console.app_config import ConsoleConfig
from gateway_console.config_resolver import ConfigResolver
from gateway_console.controllers import DispatchController, SessionsController
from gateway_console.gateway.client import GatewayClient
from gateway_console.logging_config import register_secret, setup_logging
from gateway_console.session_cache import SessionCache


@dataclass
class ConsoleRuntime:
    config: ConsoleConfig
    resolver: ConfigResolver
    client: GatewayClient
    cache: SessionCache
    dispatch: DispatchController
    sessions: SessionsController
    log_descriptions: list[str]


def create_resolver(config: ConsoleConfig) -> ConfigResolver:
    settings_path = Path(config.settings_path).expanduser() if config.settings_path else None
    return ConfigResolver(config.overrides, settings_path=settings_path)


def build_runtime(
    config: ConsoleConfig,
    resolver: ConfigResolver,
    *,
    log_descriptions: list[str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConsoleRuntime:
    """Resolve the gateway config and wire client, cache and controllers to it.

    Raises ValueError when no usable config can be resolved.
    """
    resolved = resolver.resolve()
    if not resolved.ok:
        raise ValueError(resolved.error.message)
    register_secret(resolved.value.token)

    client = GatewayClient(resolved.value, transport=transport)
    cache = SessionCache(client, message_limit=config.message_limit)
    return ConsoleRuntime(
        config=config,
        resolver=resolver,
        client=client,
        cache=cache,
        dispatch=DispatchController(
            client,
            wait_for_response=config.wait_for_response,
            default_session_key=config.default_session_key,
            cache=cache,
        ),
        sessions=SessionsController(client, cache, history_limit=config.history_limit),
        log_descriptions=log_descriptions or [],
    )


def reload_runtime(runtime: ConsoleRuntime, config: ConsoleConfig | None = None) -> ConsoleRuntime:
    """Re-resolve with fresh preferences, keeping the selected session.

    ``config`` is the re-read host config; without it the current one is reused.
    """
    config = config or runtime.config
    if config.settings_path == runtime.config.settings_path:
        resolver = runtime.resolver
        resolver.invalidate(config.overrides)
    else:
        resolver = create_resolver(config)
    selected = runtime.dispatch.snapshot.draft.session_key
    rebuilt = build_runtime(config, resolver, log_descriptions=runtime.log_descriptions)
    rebuilt.dispatch.compose(session_key=selected)
    logger.info(f"Gateway runtime rebuilt for {rebuilt.client.config.url}")
    return rebuilt


async def bootstrap_runtime(config: ConsoleConfig) -> ConsoleRuntime:
    log_descriptions = setup_logging(
        level=config.log_level,
        consumers=config.log_consumers,
        secrets=[config.gateway_token] if config.gateway_token else None,
    )
    runtime = build_runtime(config, create_resolver(config), log_descriptions=log_descriptions)
    await runtime.sessions.mount()
    return runtime
