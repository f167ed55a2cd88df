"""
Presenter image catalog.

The public D-ID presenter images the service offers, plus the primary /
fallback configuration the pipeline renders with.
"""
from typing import List, Optional
from .models import Avatar, AvatarCategory, AvatarConfig
from . import settings

_BUCKET = "https://d-id-public-bucket.s3.us-west-2.amazonaws.com"


def _avatar(name: str, category: AvatarCategory, description: str) -> Avatar:
    url = f"{_BUCKET}/{name.lower()}.jpg"
    return Avatar(id=name.lower(), name=name, source_url=url, thumbnail_url=url,
                  description=description, category=category)


AVATARS: List[Avatar] = [
    _avatar("Alice", AvatarCategory.BUSINESS,
            "Professional female avatar with friendly appearance. Ideal for corporate and educational content."),
    _avatar("Amy", AvatarCategory.GENERAL,
            "Casual female avatar with warm expression. Suitable for general presentations and tutorials."),
    _avatar("Anna", AvatarCategory.BUSINESS,
            "Young professional female avatar. Perfect for modern training videos and onboarding."),
    _avatar("James", AvatarCategory.BUSINESS,
            "Professional male avatar with executive presence. Great for business presentations."),
    _avatar("Michael", AvatarCategory.GENERAL,
            "Casual male avatar with approachable demeanor. Ideal for training and tutorial content."),
    _avatar("Jessica", AvatarCategory.BUSINESS,
            "Professional female avatar with confident appearance. Suitable for leadership training."),
    _avatar("John", AvatarCategory.BUSINESS,
            "Experienced male avatar with mature presence. Perfect for expert-level content."),
]

DEFAULT_PRIMARY = f"{_BUCKET}/alice.jpg"
DEFAULT_FALLBACKS = [f"{_BUCKET}/amy.jpg", f"{_BUCKET}/anna.jpg"]


def list_avatars(category: Optional[AvatarCategory] = None, active_only: bool = True,
                 search: Optional[str] = None, limit: int = 50, offset: int = 0,
                 catalog: Optional[List[Avatar]] = None) -> List[Avatar]:
    items = AVATARS if catalog is None else catalog
    if active_only:
        items = [a for a in items if a.is_active]
    if category:
        items = [a for a in items if a.category == category]
    if search:
        needle = search.lower()
        items = [a for a in items if needle in a.name.lower()]
    items = sorted(items, key=lambda a: (a.category.value, a.name))
    return items[offset:offset + limit]


def find_avatar(source_url: str) -> Optional[Avatar]:
    for avatar in AVATARS:
        if avatar.source_url == source_url:
            return avatar
    return None


def default_avatar_config() -> AvatarConfig:
    primary = settings.DID_PRESENTER_URL or DEFAULT_PRIMARY
    fallbacks = settings.DID_FALLBACK_PRESENTER_URLS or DEFAULT_FALLBACKS
    return AvatarConfig(primary=primary, fallbacks=[u for u in fallbacks if u != primary])
