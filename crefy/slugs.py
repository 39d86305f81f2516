import re

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def generate_slug(name: str) -> str:
    """Derive a URL-safe identifier from a display name.

    "Acme Corp!!" -> "acme-corp". The result only contains ``[a-z0-9-]``
    with no leading, trailing or doubled hyphens; it may be empty when the
    name has no ASCII letters or digits.
    """
    return _NON_SLUG_CHARS.sub("-", name.lower()).strip("-")


def is_company_slug_unique(store, slug: str) -> bool:
    return not store.company_slug_exists(slug)


def is_campaign_slug_unique(store, company_id: str, slug: str, exclude_id=None) -> bool:
    return not store.campaign_slug_exists(company_id, slug, exclude_id=exclude_id)
