"""Confinement of caller-supplied note paths to the vault root.

Every file opened by name goes through :class:`PathGuard`. The policy is an
ordered tuple of checks; the first one that objects decides the outcome, and
any filesystem error along the way is a rejection.

Invariants:
1. Path confinement - nothing outside the canonical vault root is reachable.
2. No traversal - `..`, absolute paths and symlink escapes are refused.
3. File type restriction - only `.md` notes are served.
4. Fail closed - an error while checking is a denial.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

from vaultsearch.config import VaultConfig
from vaultsearch.models import Accepted, RejectReason, Rejected, ValidationOutcome
from vaultsearch.utils.text import NOTE_EXTENSION, sanitize_for_log

LOGGER = logging.getLogger(__name__)
SECURITY_LOGGER = logging.getLogger("vaultsearch.security")

SECURITY_REASONS = frozenset(
    {
        RejectReason.ABSOLUTE,
        RejectReason.TRAVERSAL,
        RejectReason.HIDDEN,
        RejectReason.ESCAPE,
    }
)

_MESSAGES = {
    RejectReason.EMPTY: "Path is required",
    RejectReason.ABSOLUTE: "Absolute paths not allowed",
    RejectReason.TRAVERSAL: "Path traversal not allowed",
    RejectReason.HIDDEN: "Hidden files/directories not accessible",
    RejectReason.EXTENSION: f"Only {NOTE_EXTENSION} files can be retrieved",
    RejectReason.NOT_FOUND: "Note not found",
    RejectReason.UNRESOLVABLE: "Cannot resolve path",
    RejectReason.ESCAPE: "Path resolves outside vault",
    RejectReason.NOT_FILE: "Path is not a file",
}


@dataclass(slots=True)
class _Candidate:
    """State carried between checks."""

    raw: object
    text: str = ""
    normalized: str = ""
    joined: str = ""
    resolved: str = ""


Check = Callable[[_Candidate, str], Optional[RejectReason]]


def _check_present(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    if not isinstance(candidate.raw, str):
        return RejectReason.EMPTY
    candidate.text = candidate.raw.strip()
    if not candidate.text:
        return RejectReason.EMPTY
    return None


def _check_relative(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    if os.path.isabs(candidate.text):
        return RejectReason.ABSOLUTE
    return None


def _check_traversal(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    candidate.normalized = os.path.normpath(candidate.text)
    if os.pardir in candidate.normalized.split(os.sep):
        return RejectReason.TRAVERSAL
    return None


def _check_hidden(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    for part in candidate.normalized.split(os.sep):
        if part.startswith(".") and part != os.curdir:
            return RejectReason.HIDDEN
    return None


def _check_extension(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    if os.path.splitext(candidate.normalized)[1].lower() != NOTE_EXTENSION:
        return RejectReason.EXTENSION
    return None


def _check_exists(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    candidate.joined = os.path.join(root, candidate.normalized)
    if not os.path.lexists(candidate.joined):
        return RejectReason.NOT_FOUND
    return None


def _check_resolvable(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    resolved = os.path.realpath(candidate.joined)
    # realpath leaves dangling links unresolved instead of failing
    if not os.path.exists(resolved):
        return RejectReason.UNRESOLVABLE
    candidate.resolved = resolved
    return None


def _check_contained(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    if not candidate.resolved.startswith(root + os.sep):
        return RejectReason.ESCAPE
    return None


def _check_regular_file(candidate: _Candidate, root: str) -> Optional[RejectReason]:
    if not os.path.isfile(candidate.resolved):
        return RejectReason.NOT_FILE
    return None


# Order matters: nothing before _check_exists may touch the filesystem.
CHECKS: Tuple[Check, ...] = (
    _check_present,
    _check_relative,
    _check_traversal,
    _check_hidden,
    _check_extension,
    _check_exists,
    _check_resolvable,
    _check_contained,
    _check_regular_file,
)


def log_security_event(event: str, **data: object) -> None:
    """Record a security-relevant event on the dedicated security logger."""
    details = " ".join(f"{key}={value!r}" for key, value in data.items())
    SECURITY_LOGGER.warning("security:%s %s", event, details)


class PathGuard:
    """Validates untrusted note paths against a vault's canonical root."""

    def __init__(self, config: VaultConfig, checks: Tuple[Check, ...] = CHECKS) -> None:
        self.config = config
        self.checks = checks
        self._root = str(config.canonical_root)

    def validate(self, raw_path: object) -> ValidationOutcome:
        candidate = _Candidate(raw=raw_path)
        for check in self.checks:
            try:
                reason = check(candidate, self._root)
            except (OSError, ValueError) as exc:
                LOGGER.debug("Path check %s failed: %s", check.__name__, exc)
                reason = RejectReason.UNRESOLVABLE
            if reason is not None:
                return self._reject(reason, raw_path)
        return Accepted(path=Path(candidate.resolved), relative=Path(candidate.normalized).as_posix())

    def _reject(self, reason: RejectReason, raw_path: object) -> Rejected:
        echo = sanitize_for_log(raw_path)
        if reason in SECURITY_REASONS:
            log_security_event("path_traversal_blocked", reason=reason.value, path=echo)
        else:
            LOGGER.info("Note path rejected (%s): %r", reason.value, echo)
        return Rejected(reason=reason, message=_MESSAGES[reason])
