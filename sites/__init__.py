from sites.profiles import DEFAULT_PROFILES, SiteProfile, get_profile, identify_site
from sites.registry import HandlerRegistry

__all__ = [
    "DEFAULT_PROFILES",
    "HandlerRegistry",
    "SiteProfile",
    "get_profile",
    "identify_site",
]
