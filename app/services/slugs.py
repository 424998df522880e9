"""Event slugs: derivation from titles, availability, collision handling,
save-time protection and historical redirects.

Availability checks are advisory. Two editors can still race to the same
slug between check and save, so the unique constraint on ``Event.Slug`` is
the final word: ``save_event_slug`` turns a constraint violation into a
"slug taken" result with a fresh suggestion.
"""
import logging
import re
import secrets
import string
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.core.settings import settings
from app.services.content_store import ContentStore, ContentStoreError, SlugConflictError
from app.services.error_sink import ErrorSink

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

SLUG_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

SLUG_REQUIRED = "Slug is required"
SLUG_FORMAT = "Slug must contain only lowercase letters, numbers, and hyphens"
SLUG_TAKEN = "This slug is already in use"
SLUG_CHECK_FAILED = "Failed to check slug availability"
REDIRECT_FAILED = "Failed to create URL redirect"


def generate_slug_from_title(title: str, max_length: Optional[int] = None) -> str:
    """Lower-case ASCII slug for a title; '' when nothing usable remains.

    >>> generate_slug_from_title("Annual Health Camp 2024!")
    'annual-health-camp-2024'
    """
    ascii_title = (
        unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode("ascii")
    )
    slug = _NON_ALNUM_RUN.sub("-", ascii_title.lower()).strip("-")
    if max_length and len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def is_valid_slug_format(slug: str) -> bool:
    return bool(slug) and SLUG_RE.match(slug) is not None


@dataclass
class SlugAvailability:
    available: bool
    error: Optional[str] = None


@dataclass
class SlugValidation:
    is_valid: bool
    is_available: bool
    error: Optional[str] = None
    suggestion: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"isValid": self.is_valid, "isAvailable": self.is_available}
        if self.error:
            out["error"] = self.error
        if self.suggestion:
            out["suggestion"] = self.suggestion
        return out


@dataclass
class RedirectResult:
    success: bool
    error: Optional[str] = None


@dataclass
class SlugSaveResult:
    success: bool
    slug: Optional[str] = None
    previous_slug: Optional[str] = None
    redirect_created: bool = False
    conflict: bool = False
    error: Optional[str] = None
    suggestion: Optional[str] = None


@dataclass
class SlugResolution:
    event_id: str
    slug: str
    redirected: bool


class SlugResolver:
    def __init__(
        self,
        store: ContentStore,
        error_sink: Optional[ErrorSink] = None,
        max_length: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.errors = error_sink or ErrorSink(store)
        self.max_length = int(max_length or settings.SLUG_MAX_LENGTH)
        self.max_attempts = int(max_attempts or settings.SLUG_MAX_ATTEMPTS)

    def generate_slug_from_title(self, title: str) -> str:
        return generate_slug_from_title(title, self.max_length)

    def check_slug_availability(
        self, slug: str, exclude_event_id: Optional[str] = None
    ) -> SlugAvailability:
        if not slug or not slug.strip():
            return SlugAvailability(False, SLUG_REQUIRED)
        if not is_valid_slug_format(slug):
            return SlugAvailability(False, SLUG_FORMAT)
        try:
            taken = self.store.event_exists_with_slug(slug, exclude_event_id)
        except ContentStoreError as exc:
            logger.warning("slug.check_failed", extra={"slug": slug, "error": str(exc)})
            return SlugAvailability(False, SLUG_CHECK_FAILED)
        return SlugAvailability(not taken)

    def _candidate(self, base: str, suffix: str) -> str:
        room = self.max_length - len(suffix) - 1
        return f"{base[:room].rstrip('-')}-{suffix}"

    def generate_unique_slug(self, base_slug: str, exclude_event_id: Optional[str] = None) -> str:
        """Return base_slug, else the first free base-1, base-2, ...

        After max_attempts unavailable candidates (the base included) a
        random 5-character suffix is used instead so the search always ends.
        """
        if not is_valid_slug_format(base_slug):
            raise ValueError(f"Cannot derive a unique slug from {base_slug!r}")
        if self.check_slug_availability(base_slug, exclude_event_id).available:
            return base_slug
        for counter in range(1, self.max_attempts):
            candidate = self._candidate(base_slug, str(counter))
            if self.check_slug_availability(candidate, exclude_event_id).available:
                return candidate
        suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(5))
        fallback = self._candidate(base_slug, suffix)
        logger.info(
            "slug.random_fallback",
            extra={"base_slug": base_slug, "slug": fallback, "attempts": self.max_attempts},
        )
        return fallback

    def validate_slug(self, slug: str, exclude_event_id: Optional[str] = None) -> SlugValidation:
        problem = self.validate_format(slug)
        if problem:
            return SlugValidation(False, False, problem)

        availability = self.check_slug_availability(slug, exclude_event_id)
        if availability.error:
            return SlugValidation(True, False, availability.error)
        if not availability.available:
            suggestion = self.generate_unique_slug(slug, exclude_event_id)
            return SlugValidation(True, False, SLUG_TAKEN, suggestion)
        return SlugValidation(True, True)

    def create_slug_redirect(self, old_slug: str, new_slug: str, event_id: str) -> RedirectResult:
        if old_slug == new_slug:
            return RedirectResult(True)
        try:
            self.store.insert_redirect(old_slug, new_slug, event_id)
        except ContentStoreError as exc:
            self.errors.log_database_error(
                "insert_redirect",
                exc,
                {"event_id": event_id, "old_slug": old_slug, "new_slug": new_slug},
            )
            return RedirectResult(False, REDIRECT_FAILED)
        return RedirectResult(True)

    def save_event_slug(
        self, event_id: str, new_slug: str, updated_by: Optional[str] = None
    ) -> SlugSaveResult:
        """Persist a slug change; a redirect from the old slug is best-effort."""
        problem = self.validate_format(new_slug)
        if problem:
            return SlugSaveResult(False, error=problem)
        try:
            event = self.store.get_event(event_id)
            if event is None:
                return SlugSaveResult(False, error="Event not found")
            old_slug = event.Slug
            if old_slug == new_slug:
                return SlugSaveResult(True, slug=new_slug, previous_slug=old_slug)
            self.store.update_event_slug(event_id, new_slug, updated_by)
        except SlugConflictError:
            suggestion = self.generate_unique_slug(new_slug, event_id)
            logger.info(
                "slug.save_conflict",
                extra={"event_id": event_id, "slug": new_slug, "suggestion": suggestion},
            )
            return SlugSaveResult(
                False, slug=new_slug, conflict=True, error=SLUG_TAKEN, suggestion=suggestion
            )
        except ContentStoreError as exc:
            self.errors.log_database_error("update_event_slug", exc, {"event_id": event_id})
            return SlugSaveResult(False, error="Failed to save slug")

        redirect = self.create_slug_redirect(old_slug, new_slug, event_id)
        audit.info(
            "event.slug.changed",
            extra={
                "event_id": event_id,
                "old_slug": old_slug,
                "new_slug": new_slug,
                "redirect_created": redirect.success,
            },
        )
        return SlugSaveResult(
            True, slug=new_slug, previous_slug=old_slug, redirect_created=redirect.success
        )

    def validate_format(self, slug: str) -> Optional[str]:
        """Return the first static problem with a slug, or None."""
        if not slug or not slug.strip():
            return SLUG_REQUIRED
        if len(slug) > self.max_length:
            return f"Slug must be less than {self.max_length} characters"
        if not is_valid_slug_format(slug):
            return SLUG_FORMAT
        return None

    def resolve_slug(self, slug: str) -> Optional[SlugResolution]:
        """Find the event for a current or retired slug.

        Retired slugs resolve through the newest redirect's event id to that
        event's current slug, so chains of renames never need collapsing.
        """
        event = self.store.get_event_by_slug(slug)
        if event is not None:
            return SlugResolution(event.EventID, event.Slug, False)
        redirect = self.store.latest_redirect_for(slug)
        if redirect is None:
            return None
        target = self.store.get_event(redirect.EventID)
        if target is None:
            return None
        return SlugResolution(target.EventID, target.Slug, True)
