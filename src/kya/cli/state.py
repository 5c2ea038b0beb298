"""State file handling shared by the CLI commands."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..core.config import get_config
from ..core.events import EventBus
from ..core.exceptions import ConfigException, ValidationException
from ..ledger.store import LedgerState, load_snapshot, save_snapshot

logger = logging.getLogger(__name__)


def state_path(args: argparse.Namespace) -> Path:
    """State file from ``--state``, else KYA_STATE_PATH."""
    return Path(getattr(args, "state", None) or get_config().state_path)


def require_caller(args: argparse.Namespace) -> str:
    """Address given with ``--as``."""
    caller = getattr(args, "caller", None)
    if not caller:
        raise ValidationException("this command needs a caller; pass --as ADDRESS", "caller")
    return caller


@contextmanager
def open_state(args: argparse.Namespace, write: bool = True) -> Iterator[LedgerState]:
    """Load the state file, yield it and save it back if the block succeeds.

    Nothing is written when the block raises, so a rejected operation
    leaves the file untouched.
    """
    path = state_path(args)
    try:
        state = load_snapshot(path, events=EventBus(get_config().event_history_size))
    except FileNotFoundError as e:
        raise ConfigException(f"No ledger state at {path}; run 'kya init' first", "state_path") from e
    yield state
    if write:
        save_snapshot(path, state.ledger)
