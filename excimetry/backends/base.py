"""Delivery contract shared by every backend.

send(profile) in synchronous mode runs one delivery state machine per call:

    Idle -> Sending -> Success
                    -> Retrying -> Sending ... -> Success | Failed

A transport exception or a False result from ``_do_send`` counts as a failed
attempt. At most ``max_retries + 1`` attempts are made, sleeping
``retry_delay_ms`` between them; the outcome is returned, never raised.

In async mode the payload is exported on the caller's thread, the transport
call is handed to a background thread whose handle is discarded, and ``send``
returns True straight away. There is no cancellation and no completion
signal: failures there only reach the backend's logger. The thread is not a
daemon, so a script that ends right after an async send still waits for that
one attempt (bounded by the transport timeout) before the interpreter exits.

Backends are immutable; ``with_*`` helpers return reconfigured copies.
"""
from __future__ import annotations
import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..debug_util import dbg, logger as package_logger
from ..errors import ConfigurationError
from ..export.registry import Exporter
from ..ingestion.parser import Profile

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True)
class DeliveryOutcome:
    success: bool
    attempts: int

    def __bool__(self) -> bool:
        return self.success


@dataclass(frozen=True, kw_only=True, eq=False)
class Backend:
    exporter: Exporter
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    async_send: bool = False
    logger: logging.Logger = field(default=package_logger, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    name = 'backend'

    # --- configuration (copies) ---

    def with_retry_policy(self, max_retries: int, retry_delay_ms: int):
        return dataclasses.replace(self, retry=RetryPolicy(max_retries=max_retries, retry_delay_ms=retry_delay_ms))

    def with_async(self, async_send: bool):
        return dataclasses.replace(self, async_send=async_send)

    def with_exporter(self, exporter: Exporter):
        return dataclasses.replace(self, exporter=exporter)

    # --- delivery ---

    def is_available(self) -> bool:
        return True

    def send(self, profile: Profile) -> bool:
        if self.async_send:
            self._send_detached(profile)
            return True
        return self.send_with_outcome(profile).success

    def send_with_outcome(self, profile: Profile) -> DeliveryOutcome:
        """Synchronous send reporting how many transport attempts were made."""
        profile = self._prepare(profile)
        payload = self.exporter.export(profile)
        attempts = 0
        while True:
            attempts += 1
            ok = self._attempt(profile, payload, attempts)
            if ok:
                dbg(f'{self.name}_send_ok attempts={attempts} bytes={len(payload)}')
                return DeliveryOutcome(True, attempts)
            if attempts >= self.retry.max_attempts:
                self.logger.warning('%s send failed after %d attempt(s)', self.name, attempts)
                return DeliveryOutcome(False, attempts)
            dbg(f'{self.name}_send_retry attempt={attempts} delay_ms={self.retry.retry_delay_ms}')
            self.sleep(self.retry.retry_delay_ms / 1000.0)

    def _attempt(self, profile: Profile, payload: bytes, attempt: int) -> bool:
        try:
            return bool(self._do_send(profile, payload))
        except Exception as e:
            self.logger.warning('%s attempt %d raised %s: %s', self.name, attempt, e.__class__.__name__, e)
            return False

    def _send_detached(self, profile: Profile) -> None:
        profile = self._prepare(profile)
        payload = self.exporter.export(profile)
        t = threading.Thread(
            target=self._deliver_detached,
            args=(profile, payload),
            name=f'excimetry-{self.name}-send',
            daemon=False,
        )
        t.start()
        dbg(f'{self.name}_send_detached thread={t.name} bytes={len(payload)}')

    def _deliver_detached(self, profile: Profile, payload: bytes) -> None:
        if not self._attempt(profile, payload, 1):
            self.logger.warning('%s async send failed', self.name)

    # --- per transport ---

    def _prepare(self, profile: Profile) -> Profile:
        return profile

    def _do_send(self, profile: Profile, payload: bytes) -> bool:
        raise NotImplementedError


__all__ = ["Backend", "RetryPolicy", "DeliveryOutcome", "DEFAULT_MAX_RETRIES", "DEFAULT_RETRY_DELAY_MS"]
