"""
Snapshot/rollback transaction management for the staking core.

Each component lists the attributes it owns in ``_transactional_fields``.
``atomic`` snapshots its participants and restores them if the block
raises. Participants entered by nested blocks are also enlisted in every
enclosing block, so a failure anywhere up the stack rolls back everything
the outer operation touched.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import is_dataclass
from functools import wraps
from typing import Any, Dict, List, Tuple

from hummus.staking.core.errors import TransactionError

logger = logging.getLogger(__name__)

_local = threading.local()


def clone_state(value: Any) -> Any:
    """
    Copy containers and dataclass records; keep everything else by reference.

    Records are flat so a shallow copy of each is enough, and references to
    other components (rewarders, bribes, farms) stay shared.
    """
    if isinstance(value, dict):
        return {key: clone_state(item) for key, item in value.items()}
    if isinstance(value, list):
        return [clone_state(item) for item in value]
    if isinstance(value, set):
        return set(value)
    if is_dataclass(value) and not isinstance(value, type):
        return copy.copy(value)
    return value


class Transactional:
    """Mixin for components whose state can be snapshotted."""

    _transactional_fields: Tuple[str, ...] = ()

    def snapshot_state(self) -> Dict[str, Any]:
        return {name: clone_state(getattr(self, name)) for name in self._transactional_fields}

    def restore_state(self, snapshot: Dict[str, Any]):
        for name, value in snapshot.items():
            setattr(self, name, value)


def _frames() -> List[Dict[int, Tuple[Transactional, Dict[str, Any]]]]:
    frames = getattr(_local, "frames", None)
    if frames is None:
        frames = []
        _local.frames = frames
    return frames


def in_transaction() -> bool:
    return bool(_frames())


@contextmanager
def atomic(*participants: Transactional):
    """
    Run a block that either fully commits or fully reverts.

    Args:
        participants: Components the block may mutate
    """
    frames = _frames()
    frame: Dict[int, Tuple[Transactional, Dict[str, Any]]] = {}
    for participant in participants:
        if participant is None:
            continue
        if not isinstance(participant, Transactional):
            raise TransactionError(f"{participant!r} cannot take part in a transaction")
        if id(participant) in frame:
            continue
        snapshot = participant.snapshot_state()
        frame[id(participant)] = (participant, snapshot)
        for outer in frames:
            outer.setdefault(id(participant), (participant, snapshot))

    frames.append(frame)
    try:
        yield
    except BaseException as e:
        for participant, snapshot in reversed(list(frame.values())):
            participant.restore_state(snapshot)
        logger.debug(f"Rolled back {len(frame)} participant(s) after {type(e).__name__}: {e}")
        raise
    finally:
        frames.pop()


def transactional(method):
    """Decorator running a method inside atomic(*self._participants())."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with atomic(*self._participants()):
            return method(self, *args, **kwargs)

    return wrapper
