"""Tag Registry: project-wide custom-element tag ownership.

Every component gets a unique, stable, human-readable tag. Derived tags
follow the class name (``MyButton`` -> ``my-button``); collisions and names
without a hyphen get a numeric suffix (``my-button-tc2``). Explicit tags
from the registration decorator are static: they are never derived or
suffixed and reserve the name globally.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Callable

from . import constants
from .errors import TagDerivationAmbiguity
from .filesystem import FileSystem, LocalFileSystem
from .models import TagKind, TagRecord

logger = logging.getLogger(__name__)

_LOWER_UPPER = re.compile(r"([a-z])([A-Z])")
_DIGIT_LETTER = re.compile(r"([0-9])([A-Za-z])")


def derive_tag(class_name: str) -> str:
    """Hyphenate at lower->upper and digit->letter transitions, then lower-case."""
    hyphenated = _LOWER_UPPER.sub(r"\1-\2", class_name)
    hyphenated = _DIGIT_LETTER.sub(r"\1-\2", hyphenated)
    return hyphenated.lower()


class TagRegistry:
    """Owns the tag -> component mapping. All mutations hold one re-entrant lock."""

    def __init__(
        self,
        file_system: FileSystem | None = None,
        suffix: str = constants.TAG_SUFFIX,
        is_live: Callable[[str], bool] | None = None,
    ):
        self._fs = file_system or LocalFileSystem()
        self._suffix = suffix
        self._is_live = is_live or self._fs.exists
        self._lock = threading.RLock()
        self._records: dict[str, TagRecord] = {}
        # tag -> file defining an already compiled component
        self._reserved: dict[str, str] = {}
        self._stale: set[str] = set()

    def use_liveness(self, is_live: Callable[[str], bool]) -> None:
        """Replace the predicate deciding whether an owning file still exists."""
        with self._lock:
            self._is_live = is_live

    # ── queries ──────────────────────────────────────────────────

    def owner(self, tag: str) -> TagRecord | None:
        with self._lock:
            return self._records.get(tag)

    def tag_of(self, class_name: str, file_path: str) -> str | None:
        with self._lock:
            return next(
                (r.tag for r in self._records.values() if r.owned_by(file_path, class_name)),
                None,
            )

    def records(self) -> list[TagRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.tag)

    def file_tags(self, file_path: str) -> dict[str, str]:
        with self._lock:
            return {
                r.class_name: r.tag for r in self._records.values() if r.file_path == file_path
            }

    def reserved(self) -> dict[str, str]:
        with self._lock:
            return dict(self._reserved)

    def drain_stale(self) -> list[str]:
        """Files whose dynamic tags were evicted by a static claim since the last call."""
        with self._lock:
            stale = sorted(self._stale)
            self._stale.clear()
            return stale

    # ── mutations ────────────────────────────────────────────────

    def assign(self, class_name: str, file_path: str, explicit_tag: str | None = None) -> str:
        with self._lock:
            if explicit_tag:
                return self._assign_static(class_name, file_path, explicit_tag)
            current = self.tag_of(class_name, file_path)
            if current is not None and self._records[current].kind == TagKind.DYNAMIC:
                return current
            if current is not None:
                del self._records[current]
            tag = self._derive_free(class_name, file_path)
            self._records[tag] = TagRecord(
                tag=tag, file_path=file_path, class_name=class_name, kind=TagKind.DYNAMIC
            )
            logger.debug("Assigned <%s> to %s in %s", tag, class_name, file_path)
            return tag

    def assign_file(
        self, file_path: str, components: list[tuple[str, str | None]]
    ) -> dict[str, str]:
        """Release a file's tags and assign its current components, atomically.

        Static claims are made first so a derived tag never takes a name that
        the same file reserves explicitly.
        """
        with self._lock:
            previous = {
                tag: record for tag, record in self._records.items() if record.file_path == file_path
            }
            for tag in previous:
                del self._records[tag]
            assigned: dict[str, str] = {}
            ordered = sorted(components, key=lambda c: c[1] is None)
            for class_name, explicit_tag in ordered:
                kept = next(
                    (
                        r.tag
                        for r in previous.values()
                        if r.class_name == class_name
                        and r.kind == TagKind.DYNAMIC
                        and not explicit_tag
                        and self._is_free(r.tag, file_path, class_name)
                    ),
                    None,
                )
                if kept is not None:
                    self._records[kept] = previous[kept]
                    assigned[class_name] = kept
                    continue
                assigned[class_name] = self.assign(class_name, file_path, explicit_tag)
            return assigned

    def reserve_static(self, tag: str, file_path: str) -> None:
        """Reserve the tag of an already compiled component defined in *file_path*.

        Reserved tags are never derived. A live dynamic owner of the tag is
        evicted and its file reported by ``drain_stale``.
        """
        with self._lock:
            self._reserved[tag] = file_path
            existing = self._records.get(tag)
            if existing is None or existing.file_path == file_path:
                return
            if existing.kind == TagKind.STATIC:
                logger.error(
                    "Tag <%s> of %s in %s is also defined in %s",
                    tag,
                    existing.class_name,
                    existing.file_path,
                    file_path,
                )
                return
            logger.warning(
                "Reserved tag <%s> from %s evicts %s in %s",
                tag,
                file_path,
                existing.class_name,
                existing.file_path,
            )
            if self._is_live(existing.file_path):
                self._stale.add(existing.file_path)
            del self._records[tag]

    def reserve_file(self, file_path: str, tags: list[str]) -> None:
        """Replace the reservations made by *file_path* with *tags*."""
        with self._lock:
            self._reserved = {t: p for t, p in self._reserved.items() if p != file_path}
            for tag in tags:
                self.reserve_static(tag, file_path)

    def forget_file(self, file_path: str) -> list[str]:
        """Drop every tag owned or reserved by a deleted file."""
        with self._lock:
            released = [tag for tag, r in self._records.items() if r.file_path == file_path]
            for tag in released:
                del self._records[tag]
            self._reserved = {t: p for t, p in self._reserved.items() if p != file_path}
            if released:
                logger.info("Released %s from %s", ", ".join(released), file_path)
            return released

    # ── internals ────────────────────────────────────────────────

    def _assign_static(self, class_name: str, file_path: str, tag: str) -> str:
        defined_in = self._reserved.get(tag, file_path)
        if defined_in != file_path:
            logger.error(
                "Tag <%s> of %s in %s is already defined in %s",
                tag,
                class_name,
                file_path,
                defined_in,
            )
            return tag
        existing = self._records.get(tag)
        if existing is not None and not existing.owned_by(file_path, class_name):
            if existing.kind == TagKind.STATIC and self._is_live(existing.file_path):
                logger.error(
                    "Tag <%s> of %s in %s is already declared by %s in %s",
                    tag,
                    class_name,
                    file_path,
                    existing.class_name,
                    existing.file_path,
                )
                return tag
            if existing.kind == TagKind.DYNAMIC and self._is_live(existing.file_path):
                logger.warning(
                    "Static tag <%s> of %s evicts %s in %s",
                    tag,
                    class_name,
                    existing.class_name,
                    existing.file_path,
                )
                self._stale.add(existing.file_path)
            del self._records[tag]
        previous = self.tag_of(class_name, file_path)
        if previous is not None and previous != tag:
            del self._records[previous]
        self._records[tag] = TagRecord(
            tag=tag, file_path=file_path, class_name=class_name, kind=TagKind.STATIC
        )
        return tag

    def _is_free(self, tag: str, file_path: str, class_name: str) -> bool:
        if "-" not in tag:
            return False
        record = self._records.get(tag)
        if self._reserved.get(tag, file_path) != file_path:
            return False
        if record is None or record.owned_by(file_path, class_name):
            return True
        if not self._is_live(record.file_path):
            logger.info("Reclaiming <%s> from deleted %s", tag, record.file_path)
            del self._records[tag]
            return True
        return False

    def _derive_free(self, class_name: str, file_path: str) -> str:
        base = derive_tag(class_name)
        if self._is_free(base, file_path, class_name):
            return base
        if "-" not in base:
            logger.debug("%s", TagDerivationAmbiguity(f"{class_name} -> {base!r} has no hyphen"))
        index = constants.TAG_FIRST_SUFFIX_INDEX
        while True:
            candidate = f"{base}{self._suffix}{index}"
            if self._is_free(candidate, file_path, class_name):
                return candidate
            index += 1
