"""Coarse User-Agent classification for access logs.

Every table is ordered and the first match wins, so more specific tokens
must come before the generic ones they contain (Edge and Opera UAs carry
"Chrome" and "Safari", tablet UAs often carry "Mobile").
"""

from typing import Optional, Sequence, Tuple

DEVICE_TABLET = "tablet"
DEVICE_MOBILE = "mobile"
DEVICE_DESKTOP = "desktop"
UNKNOWN = "unknown"

TABLET_SIGNATURES = ("iPad", "Tablet", "Kindle", "Silk", "PlayBook")
MOBILE_SIGNATURES = ("Mobile", "iPhone", "iPod", "Android", "BlackBerry",
                     "IEMobile", "Opera Mini", "Windows Phone")

BROWSERS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("Edge", ("Edg/", "EdgA/", "EdgiOS/", "Edge/")),
    ("Opera", ("OPR/", "Opera")),
    ("Samsung Internet", ("SamsungBrowser",)),
    ("Firefox", ("Firefox", "FxiOS")),
    ("Chrome", ("Chrome", "CriOS", "Chromium")),
    ("Safari", ("Safari",)),
    ("Internet Explorer", ("MSIE", "Trident/")),
)

OPERATING_SYSTEMS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("Windows Phone", ("Windows Phone",)),
    ("Windows", ("Windows",)),
    ("Android", ("Android",)),
    ("iOS", ("iPhone", "iPad", "iPod")),
    ("macOS", ("Mac OS X", "Macintosh")),
    ("Chrome OS", ("CrOS",)),
    ("Linux", ("Linux",)),
)


def detect_device_type(user_agent: Optional[str]) -> str:
    if not user_agent:
        return DEVICE_DESKTOP
    if any(token in user_agent for token in TABLET_SIGNATURES):
        return DEVICE_TABLET
    # Android tablets drop the "Mobile" token that Android phones send
    if "Android" in user_agent and "Mobile" not in user_agent:
        return DEVICE_TABLET
    if any(token in user_agent for token in MOBILE_SIGNATURES):
        return DEVICE_MOBILE
    return DEVICE_DESKTOP


def _first_match(user_agent: Optional[str], table: Sequence[Tuple[str, Tuple[str, ...]]]) -> str:
    if not user_agent:
        return UNKNOWN
    for name, tokens in table:
        if any(token in user_agent for token in tokens):
            return name
    return UNKNOWN


def detect_browser(user_agent: Optional[str]) -> str:
    return _first_match(user_agent, BROWSERS)


def detect_os(user_agent: Optional[str]) -> str:
    return _first_match(user_agent, OPERATING_SYSTEMS)
