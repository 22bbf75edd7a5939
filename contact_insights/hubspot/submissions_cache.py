"""
Form-submission index with a file-backed incremental cache.

Run policy:
- no cache path configured → full fetch every run
- cache file present       → fetch the newest page per form, merge, save
- cache file absent        → full fetch once, save as the new baseline

Known limitation: the incremental path assumes upstream returns newest-first and that
fewer than one page (50) of submissions per form arrived since the previous run. Nothing
here re-walks history; a warning event is emitted when a delta page looks like it may
have skipped submissions.
"""
from __future__ import annotations

import json
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from contact_insights.utils import Throttle, chunked

from .client import HubSpotClient
from .config import FormSubmissionsConfig
from .constants import FORM_SUBMISSIONS_PAGE_SIZE
from .errors import CacheCorruptError, CacheNotFound
from .events import debug, progress, warn
from .forms import ByEmail, FormFetchResult, FormRef, FormSubmissionEntry, collect_form, extend_by_email
from .time_utils import cutoff_ms as compute_cutoff_ms
from .time_utils import now_ms

PathLike = Union[str, Path]


@dataclass
class SubmissionCache:
    by_email: ByEmail = field(default_factory=dict)
    fetched_at: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {
            "fetchedAt": int(self.fetched_at),
            "byEmail": {email: [e.to_json() for e in entries] for email, entries in self.by_email.items()},
        }

    @classmethod
    def from_json(cls, data: Any) -> "SubmissionCache":
        if not isinstance(data, dict):
            raise ValueError("cache root must be an object")
        raw = data.get("byEmail") or {}
        if not isinstance(raw, dict):
            raise ValueError("byEmail must be an object")
        by_email: ByEmail = {}
        for email, entries in raw.items():
            if isinstance(entries, list):
                by_email[str(email)] = [FormSubmissionEntry.from_json(e) for e in entries if isinstance(e, dict)]
        fetched = data.get("fetchedAt") or 0
        return cls(by_email=by_email, fetched_at=int(fetched))


@dataclass(frozen=True)
class CacheBuildResult:
    by_email: ByEmail
    # "incremental" | "full" | "full-uncached"
    mode: str
    possible_gaps: List[str] = field(default_factory=list)


def load(path: PathLike) -> SubmissionCache:
    """Raises CacheNotFound when no file exists; CacheCorruptError for anything else."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise CacheNotFound(str(p)) from e
    except OSError as e:
        raise CacheCorruptError(f"Cannot read submission cache {p}: {e}") from e
    try:
        return SubmissionCache.from_json(json.loads(text))
    except (ValueError, TypeError) as e:
        raise CacheCorruptError(f"Malformed submission cache {p}: {e}") from e


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def save(path: PathLike, cache: SubmissionCache, *, fetched_at: Optional[int] = None) -> None:
    """Write atomically: temp file in the same directory, then os.replace."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    cache.fetched_at = fetched_at if fetched_at is not None else now_ms()

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(cache.to_json(), f, separators=(",", ":"))
        # mkstemp creates 0600; give the cache the usual umask-derived mode
        os.chmod(tmp, 0o666 & ~_current_umask())
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def merge(cache: SubmissionCache, delta: ByEmail) -> SubmissionCache:
    """
    Fold `delta` into `cache` per email: an entry whose (formGuid, conversionId) already
    exists overwrites it in place, otherwise it is appended.
    """
    for email, entries in delta.items():
        existing = cache.by_email.setdefault(email, [])
        index = {e.key: i for i, e in enumerate(existing)}
        for entry in entries:
            i = index.get(entry.key)
            if i is not None:
                existing[i] = entry
            else:
                index[entry.key] = len(existing)
                existing.append(entry)
    return cache


class IncrementalCacheMerger:
    def __init__(
        self,
        client: HubSpotClient,
        settings: FormSubmissionsConfig,
        *,
        throttle: Optional[Throttle] = None,
    ):
        self.client = client
        self.settings = settings
        self.throttle = throttle

    def _wait(self) -> None:
        if self.throttle is not None:
            self.throttle.wait()

    def _collect(self, form: FormRef, limit: int, cutoff: int) -> FormFetchResult:
        return collect_form(self.client, form, max_per_form=limit, cutoff_ms=cutoff, throttle=self.throttle)

    def fetch_delta(self, forms: Sequence[FormRef], cutoff: int = 0) -> Dict[str, FormFetchResult]:
        """Newest page only per form, regardless of max_per_form."""
        results: Dict[str, FormFetchResult] = {}
        for form in forms:
            results[form.guid] = self._collect(form, FORM_SUBMISSIONS_PAGE_SIZE, cutoff)
            self._wait()
        return results

    def fetch_full(
        self,
        forms: Sequence[FormRef],
        *,
        per_form_limit: int,
        cutoff: int = 0,
        concurrency: int = 1,
    ) -> ByEmail:
        """
        Walk every form to `per_form_limit`. With concurrency > 1, up to that many forms
        paginate at once; each task owns its map, merged in form order once the chunk is done.
        """
        by_email: ByEmail = {}
        if concurrency <= 1:
            for form in forms:
                extend_by_email(by_email, self._collect(form, per_form_limit, cutoff).by_email)
                self._wait()
            return by_email

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="forms") as pool:
            for chunk in chunked(list(forms), concurrency):
                futures = [pool.submit(self._collect, form, per_form_limit, cutoff) for form in chunk]
                for fut in futures:
                    extend_by_email(by_email, fut.result().by_email)
                self._wait()
        return by_email

    def build(self, forms: Sequence[FormRef], *, now: Optional[int] = None) -> CacheBuildResult:
        s = self.settings
        cutoff = compute_cutoff_ms(s.max_age_months, now=now)

        if not s.cache_path:
            by_email = self.fetch_full(forms, per_form_limit=s.max_per_form, cutoff=cutoff, concurrency=s.concurrency)
            return CacheBuildResult(by_email=by_email, mode="full-uncached")

        try:
            cache = load(s.cache_path)
        except CacheNotFound:
            debug("forms.cache.miss", stream="forms", path=s.cache_path)
            cache = None

        if cache is not None:
            delta = self.fetch_delta(forms, cutoff)
            gaps = detect_gaps(delta.values(), previous_fetched_at=cache.fetched_at)
            for guid in gaps:
                warn("forms.cache.possible_gap", stream="forms", form_guid=guid, fetched_at=cache.fetched_at)
            merge(cache, _combine(delta.values()))
            save(s.cache_path, cache, fetched_at=now)
            progress("forms.cache.incremental", stream="forms", emails=len(cache.by_email), forms=len(forms))
            return CacheBuildResult(by_email=cache.by_email, mode="incremental", possible_gaps=gaps)

        by_email = self.fetch_full(forms, per_form_limit=s.max_per_form, cutoff=cutoff, concurrency=s.concurrency)
        save(s.cache_path, SubmissionCache(by_email=by_email), fetched_at=now)
        progress("forms.cache.full", stream="forms", emails=len(by_email), forms=len(forms))
        return CacheBuildResult(by_email=by_email, mode="full")


def _combine(results: Iterable[FormFetchResult]) -> ByEmail:
    out: ByEmail = {}
    for r in results:
        extend_by_email(out, r.by_email)
    return out


def detect_gaps(results: Iterable[FormFetchResult], *, previous_fetched_at: int) -> List[str]:
    """
    Forms whose delta page was full and whose oldest item is still newer than the previous
    run: older unseen submissions may exist beyond that page.
    """
    if not previous_fetched_at:
        return []
    gaps: List[str] = []
    for r in results:
        if r.seen < FORM_SUBMISSIONS_PAGE_SIZE:
            continue
        if r.oldest_submitted_at is not None and r.oldest_submitted_at > previous_fetched_at:
            gaps.append(r.form.guid)
    return gaps
