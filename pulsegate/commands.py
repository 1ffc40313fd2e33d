"""Command vocabulary and dispatch for authenticated requests.

The registry is both the whitelist the validator checks against and the
dispatch table, so a command cannot be accepted without a handler. To add
a command, register one more handler; names are letters only.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple

from .core.errors import AdminRequestError, CommandExecutionError, SanityCheckFailed
from .core.models import ValidationResult
from .core.protocols import CacheInvalidator, ConfigurationStore, ConfigValue

LOGGER = logging.getLogger(__name__)

_COMMAND_NAME_RE = re.compile(r"[A-Za-z]+")


class CommandConfigurationError(RuntimeError):
    """Raised when the command registry is set up incorrectly."""


@dataclass(slots=True)
class CommandContext:
    """Collaborators a handler may act on."""

    config_store: ConfigurationStore
    cache: CacheInvalidator


@dataclass(slots=True)
class CommandResult:
    command: str
    status: int = 200
    body: str = "OK"
    detail: Optional[str] = None


CommandHandler = Callable[[CommandContext], CommandResult]


class CommandRegistry:
    """Maps whitelisted command names to handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[str, CommandHandler] = {}

    def register(self, name: str, handler: CommandHandler) -> None:
        if not _COMMAND_NAME_RE.fullmatch(name):
            raise CommandConfigurationError(
                f"Command name '{name}' must contain letters only"
            )
        if name in self._handlers:
            raise CommandConfigurationError(f"Command '{name}' is already registered")
        self._handlers[name] = handler

    def get(self, name: str) -> Optional[CommandHandler]:
        return self._handlers.get(name)

    def names(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


# Hardening bundle applied by ``lockDown``, in order.
LOCKDOWN_SETTINGS: Tuple[Tuple[str, ConfigValue], ...] = (
    ("allow_register", 0),  # new registrations closed
    ("multi_login", 0),  # one session per user
    ("enable_badips", 1),  # IP bans
    ("com_rule", 0),  # comments closed for all modules
    ("use_captcha", 1),
    ("enable_purifier", 1),  # HTML sanitiser
    ("keyword_min", 5),  # minimum search string length
    ("gzip_compression", 0),  # trade bandwidth for CPU
    ("minpass", 8),
    ("pass_level", "strong"),
    ("allow_chgmail", 0),
    ("allow_chg_display_name", 0),
    ("allow_sig_external", 0),  # external images and HTML in signatures
    ("avatar_allow_upload", 0),
)


def _check_pulse(context: CommandContext) -> CommandResult:
    return CommandResult(command="checkPulse", status=200)


def _close_site(context: CommandContext) -> CommandResult:
    context.config_store.set_config("closesite", 1)
    return CommandResult(command="closeSite")


def _open_site(context: CommandContext) -> CommandResult:
    # Reopening needs access that a closed site denies to everyone but
    # administrators, so it stays a manual operation for now.
    LOGGER.warning("openSite is reserved and has no effect")
    return CommandResult(command="openSite", detail="not implemented")


def _clear_cache(context: CommandContext) -> CommandResult:
    context.cache.clear_cache()
    return CommandResult(command="clearCache")


def _debug_on(context: CommandContext) -> CommandResult:
    context.config_store.set_config("debug_mode", 1)
    return CommandResult(command="debugOn")


def _debug_off(context: CommandContext) -> CommandResult:
    context.config_store.set_config("debug_mode", 0)
    return CommandResult(command="debugOff")


def _lock_down(context: CommandContext) -> CommandResult:
    # No rollback: settings written before a failure stay written.
    for name, value in LOCKDOWN_SETTINGS:
        context.config_store.set_config(name, value)
    return CommandResult(
        command="lockDown", detail=f"{len(LOCKDOWN_SETTINGS)} settings applied"
    )


def default_registry() -> CommandRegistry:
    registry = CommandRegistry()
    registry.register("checkPulse", _check_pulse)
    registry.register("closeSite", _close_site)
    registry.register("openSite", _open_site)
    registry.register("clearCache", _clear_cache)
    registry.register("debugOn", _debug_on)
    registry.register("debugOff", _debug_off)
    registry.register("lockDown", _lock_down)
    return registry


class CommandDispatcher:
    """Runs exactly one handler for a fully authenticated request."""

    def __init__(self, registry: CommandRegistry, context: CommandContext) -> None:
        self._registry = registry
        self._context = context

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    def dispatch(self, validation: ValidationResult) -> CommandResult:
        if not validation.authenticated or validation.request is None:
            raise SanityCheckFailed()

        command = validation.request.command
        handler = self._registry.get(command)
        if handler is None:
            # The validator only admits registered names.
            raise CommandExecutionError(
                f"No handler registered for {command}", command=command
            )

        try:
            result = handler(self._context)
        except AdminRequestError:
            raise
        except Exception as exc:
            LOGGER.exception("Command %s failed", command)
            raise CommandExecutionError(command=command) from exc

        LOGGER.info(
            "Executed %s for client %s%s",
            command,
            validation.request.client_id,
            f" ({result.detail})" if result.detail else "",
        )
        return result
