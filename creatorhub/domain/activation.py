"""
Creator activation rules (pure, storage-independent).

A creator storefront is live when:
    profile_complete AND payment_connected AND (has_published_product OR has_product)

Payment connectivity is read from several sources that were added to the
schema at different times. Earlier sources are fresher than later ones, so the
chain is evaluated in order and stops at the first truthy signal:

    1. users.stripe_connected                      (canonical per-user flag)
    2. creator_profiles.stripe_charges_enabled     (profile mirror)
    3. stripe_connect charges/details flags        (connectivity record)
    4. users.stripe_charges_enabled/details        (legacy per-user flags)

A source whose column or row is missing reports None ("signal absent").
"""
from dataclasses import dataclass
from typing import Callable, Iterable

MIN_GALLERY_PHOTOS = 4

SOURCE_USER_FLAG = "users.stripe_connected"
SOURCE_PROFILE_MIRROR = "creator_profiles.stripe_charges_enabled"
SOURCE_CONNECT_RECORD = "stripe_connect"
SOURCE_LEGACY_USER_FLAGS = "users.stripe_legacy_flags"

PAYMENT_SOURCE_PRIORITY = (
    SOURCE_USER_FLAG,
    SOURCE_PROFILE_MIRROR,
    SOURCE_CONNECT_RECORD,
    SOURCE_LEGACY_USER_FLAGS,
)


@dataclass(frozen=True)
class ActivationSnapshot:
    is_active: bool
    profile_complete: bool
    payment_connected: bool
    has_product: bool
    has_published_product: bool
    total_products: int = 0
    payment_source: str | None = None

    def as_dict(self) -> dict:
        return {
            "is_active": self.is_active,
            "profile_complete": self.profile_complete,
            "payment_connected": self.payment_connected,
            "has_product": self.has_product,
            "has_published_product": self.has_published_product,
            "total_products": self.total_products,
            "payment_source": self.payment_source,
        }


INACTIVE = ActivationSnapshot(
    is_active=False,
    profile_complete=False,
    payment_connected=False,
    has_product=False,
    has_published_product=False,
)


def resolve_payment_connected(
    signals: dict[str, bool | None | Callable[[], bool | None]],
) -> tuple[bool, str | None]:
    """
    Walk PAYMENT_SOURCE_PRIORITY and return (connected, source_name).

    A signal may be a zero-arg callable; it is only called when every
    higher-priority source came back falsy. Unknown keys are ignored and
    missing keys count as absent.
    """
    for source in PAYMENT_SOURCE_PRIORITY:
        value = signals.get(source)
        if callable(value):
            value = value()
        if value:
            return True, source
    return False, None


def derive_profile_complete(
    explicit_flag: bool | None,
    display_name: str | None,
    bio: str | None,
    profile_image: str | None,
    photos_count: int,
) -> bool:
    """Explicit flag wins when set; otherwise all four requirements must hold."""
    if explicit_flag is True:
        return True
    return bool(
        (display_name or "").strip()
        and (bio or "").strip()
        and (profile_image or "").strip()
        and (photos_count or 0) >= MIN_GALLERY_PHOTOS
    )


def compute_is_active(
    profile_complete: bool,
    payment_connected: bool,
    has_published_product: bool,
    has_product: bool,
) -> bool:
    return bool(profile_complete and payment_connected and (has_published_product or has_product))


def any_flag(values: Iterable[bool | None]) -> bool | None:
    """OR over flags; None when every flag is absent."""
    seen = False
    for v in values:
        if v is None:
            continue
        seen = True
        if v:
            return True
    return False if seen else None
