"""CLI — Shared runtime wiring (settings, state store, provider)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from rich.console import Console

from infra_reconciler.config import Settings, override_settings
from infra_reconciler.exceptions import ReconcilerError
from infra_reconciler.logging import configure_logging
from infra_reconciler.orchestration.executor import ReconcileExecutor
from infra_reconciler.orchestration.retry import RetryPolicy
from infra_reconciler.orchestration.state import AppliedStateStore
from infra_reconciler.providers import ProviderClient, load_provider


@dataclass
class Runtime:
    settings: Settings
    store: AppliedStateStore
    provider: ProviderClient

    def executor(self) -> ReconcileExecutor:
        return ReconcileExecutor(
            provider=self.provider,
            state_store=self.store,
            retry_policy=RetryPolicy.from_config(self.settings.executor),
            run_timeout=self.settings.executor.run_timeout_seconds,
        )


def load_settings(config: Path | None, state_db: Path | None = None) -> Settings:
    settings = Settings.load(config_file=config)
    if state_db is not None:
        settings.state.db_path = state_db
    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )
    override_settings(settings)
    return settings


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncIterator[Runtime]:
    store = AppliedStateStore(settings.state.db_path)
    await store.init()
    try:
        provider = load_provider(settings.provider.class_path, settings.provider.options)
    except ReconcilerError:
        await store.close()
        raise
    try:
        yield Runtime(settings=settings, store=store, provider=provider)
    finally:
        await provider.close()
        await store.close()


def print_error(console: Console, exc: ReconcilerError) -> None:
    console.print(f"[red]Error ({type(exc).__name__}): {exc.message}[/red]")
    for key, value in exc.context.items():
        if value in (None, [], {}):
            continue
        if key == "validation_errors":
            for err in value:
                console.print(f"  [red]- {err.get('field', '?')}: {err.get('message', '')}[/red]")
        else:
            console.print(f"  {key}: {value}")
