"""Tracking of when cached engine results may no longer match the source.

One flag per cached result kind. A flag is raised by any configuration
change and by saving a modified Logtalk document; it is cleared only when a
fresh engine run for that kind succeeds. Rendering never clears it. Stale
results are still shown, with an advisory suffix on the title.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterable
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

LANGUAGE_ID = "logtalk"
SOURCE_SUFFIXES = frozenset({".lgt", ".logtalk"})
OUTDATED_SUFFIX = " (may be outdated)"


class ResultKind(str, Enum):
    TESTS = "tests"
    METRICS = "metrics"


def is_source_document(uri: str, language_id: str | None = None) -> bool:
    if language_id is not None:
        return language_id == LANGUAGE_ID
    suffix = PurePosixPath(unquote(urlparse(uri).path or uri)).suffix
    return suffix.lower() in SOURCE_SUFFIXES


class StalenessTracker:
    def __init__(self, kinds: Iterable[ResultKind] = tuple(ResultKind)) -> None:
        self._flags: dict[ResultKind, bool] = {kind: False for kind in kinds}
        self._modified: set[str] = set()

    def is_stale(self, kind: ResultKind) -> bool:
        return self._flags.get(kind, False)

    def mark_stale(self, kind: ResultKind | None = None) -> None:
        kinds = list(self._flags) if kind is None else [kind]
        for each in kinds:
            self._flags[each] = True

    def is_modified(self, uri: str) -> bool:
        return uri in self._modified

    def on_configuration_changed(self) -> None:
        logger.debug("configuration changed, cached results marked stale")
        self.mark_stale()

    def on_document_changed(self, uri: str, language_id: str | None = None) -> None:
        if is_source_document(uri, language_id):
            self._modified.add(uri)

    def on_will_save(self, uri: str, language_id: str | None = None) -> bool:
        """Raise every flag when a modified Logtalk document is about to be saved."""
        if not is_source_document(uri, language_id) or uri not in self._modified:
            return False
        logger.debug("saving modified %s, cached results marked stale", uri)
        self.mark_stale()
        return True

    def on_saved(self, uri: str) -> None:
        self._modified.discard(uri)

    def on_closed(self, uri: str) -> None:
        self._modified.discard(uri)

    def on_analysis_succeeded(self, kind: ResultKind) -> None:
        self._flags[kind] = False

    def annotate(self, title: str, kind: ResultKind, uri: str) -> str:
        if self.is_stale(kind) or self.is_modified(uri):
            return title + OUTDATED_SUFFIX
        return title
