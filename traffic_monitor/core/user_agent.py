"""User-Agent parsing for request logging.

Derives platform, browser, browser version and a coarse device class from a
raw User-Agent header. The token vocabularies and priority lists follow the
donatj/PhpUserAgent parser (MIT licensed). User agents impersonate each other
(Chrome claims to be Safari, everything claims to be Mozilla), so a single
regex is not enough: tokens are collected first and then resolved by an
ordered cascade of special cases.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UserAgentInfo:
    """Facts recovered from a User-Agent string. Empty string means unknown."""
    platform: str
    browser: str
    browser_version: str
    device_class: str


_PARENTHESIZED = re.compile(r"\((.*?)\)", re.MULTILINE)

_PLATFORM_TOKENS = re.compile(
    r"""
    (?P<platform>BB\d+;|Android|Adr|Symbian|Sailfish|CrOS|Tizen|iPhone|iPad|iPod|Linux|(?:Open|Net|Free)BSD|Macintosh|
    Windows(?:\ Phone)?|Silk|linux-gnu|BlackBerry|PlayBook|X11|(?:New\ )?Nintendo\ (?:WiiU?|3?DS|Switch)|Xbox(?:\ One)?)
    (?:\ [^;]*)?
    (?:;|$)
    """,
    re.IGNORECASE | re.MULTILINE | re.VERBOSE,
)

# Used only when several platform tokens appear inside the parentheses.
_PLATFORM_PRIORITY = (
    "Xbox One",
    "Xbox",
    "Windows Phone",
    "Tizen",
    "Android",
    "FreeBSD",
    "NetBSD",
    "OpenBSD",
    "CrOS",
    "X11",
    "Sailfish",
)

_PLATFORM_ALIASES = {
    "linux-gnu": "Linux",
    "X11": "Linux",
    "CrOS": "Chrome OS",
    "Adr": "Android",
}

_LOOSE_ANDROID = re.compile(r"(?P<platform>Android)[:/ ]", re.IGNORECASE)

_BROWSER_TOKENS = re.compile(
    r"""
    (?P<browser>Camino|Kindle(?:\ Fire)?|Firefox|Iceweasel|IceCat|Safari|MSIE|Trident|AppleWebKit|
    TizenBrowser|(?:Headless)?Chrome|YaBrowser|Vivaldi|IEMobile|Opera|OPR|Silk|Midori|(?-i:Edge)|EdgA?|CriOS|UCBrowser|Puffin|
    OculusBrowser|SamsungBrowser|SailfishBrowser|XiaoMi/MiuiBrowser|YaApp_Android|Whale|
    Baiduspider|Applebot|Facebot|Googlebot|YandexBot|bingbot|Lynx|Version|Wget|curl|ChatGPT-User|GPTBot|OAI-SearchBot|
    Valve\ Steam\ Tenfoot|Mastodon|
    NintendoBrowser|PLAYSTATION\ (?:\d|Vita)+)
    \)?;?
    (?:[:/ ](?P<version>[0-9A-Z.]+)|/[A-Z]*)
    """,
    re.IGNORECASE | re.VERBOSE,
)

# Anything shaped like "token/version" that is not the Mozilla prefix.
_GENERIC_TOKEN = re.compile(
    r"^(?!Mozilla)(?P<browser>[A-Z0-9\-]+)(?:[/ :](?P<version>[0-9A-Z.]+))?",
    re.IGNORECASE,
)

_IE_REVISION = re.compile(r"rv:(?P<version>[0-9A-Z.]+)", re.IGNORECASE)

_PLAYSTATION = re.compile(r"playstation \d", re.IGNORECASE)

# Search order matters: the first alias present in the token list wins.
_BROWSER_ALIASES = {
    "OPR": "Opera",
    "Facebot": "iMessageBot",
    "UCBrowser": "UC Browser",
    "YaBrowser": "Yandex",
    "YaApp_Android": "Yandex",
    "Iceweasel": "Firefox",
    "Icecat": "Firefox",
    "CriOS": "Chrome",
    "Edg": "Edge",
    "EdgA": "Edge",
    "XiaoMi/MiuiBrowser": "MiuiBrowser",
}

_NAMED_BROWSERS = (
    "Googlebot",
    "Applebot",
    "IEMobile",
    "Edge",
    "Midori",
    "Whale",
    "Vivaldi",
    "OculusBrowser",
    "SamsungBrowser",
    "Valve Steam Tenfoot",
    "Chrome",
    "HeadlessChrome",
    "SailfishBrowser",
)

# Puffin appends a two letter platform flag to its version, e.g. 4.5.0IT.
_PUFFIN_FLAGS = {
    "IP": "iPhone",
    "IT": "iPad",
    "AP": "Android",
    "AT": "Android",
    "WP": "Windows Phone",
    "WT": "Windows",
}


def get_device_class(user_agent: str) -> str:
    """Classify the device as Mobile, Tablet or Desktop.

    Args:
        user_agent: The User-Agent header value

    Returns:
        Device class, or an empty string for an empty user agent
    """
    if not user_agent:
        return ""
    ua_lower = user_agent.lower()
    if "mobile" in ua_lower:
        return "Mobile"
    if "tablet" in ua_lower or "ipad" in ua_lower:
        return "Tablet"
    return "Desktop"


def _extract_platform(user_agent: str) -> Optional[str]:
    platform = None

    parent = _PARENTHESIZED.search(user_agent)
    if parent:
        found: list[str] = []
        for match in _PLATFORM_TOKENS.finditer(parent.group(1)):
            token = match.group("platform")
            if token not in found:
                found.append(token)
        if len(found) > 1:
            preferred = [token for token in _PLATFORM_PRIORITY if token in found]
            platform = preferred[0] if preferred else found[0]
        elif found:
            platform = found[0]

    if platform is None:
        loose = _LOOSE_ANDROID.search(user_agent)
        if loose:
            platform = loose.group("platform")
        return platform

    return _PLATFORM_ALIASES.get(platform, platform)


class _TokenList:
    """Matched browser tokens with case-insensitive lookup by name."""

    def __init__(self, browsers: list[str], versions: list[str]) -> None:
        self.browsers = browsers
        self.versions = versions
        self._lower = [name.lower() for name in browsers]

    def find(self, *names: str) -> Optional[tuple[int, str]]:
        """Return (index, searched name) for the first name present."""
        for name in names:
            try:
                return self._lower.index(name.lower()), name
            except ValueError:
                continue
        return None

    def version_of(self, name: str, default_index: int = 0) -> str:
        # Exact-case lookup; falls back to the given index.
        try:
            return self.versions[self.browsers.index(name)]
        except ValueError:
            return self.versions[default_index]


def _generic_match(user_agent: str, platform: Optional[str]) -> tuple[Optional[str], Optional[str], Optional[str]]:
    match = _GENERIC_TOKEN.search(user_agent)
    if not match:
        return platform, None, None
    return platform or None, match.group("browser"), match.group("version") or None


def _resolve_browser(
    user_agent: str,
    platform: Optional[str],
) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Return (platform, browser, version) after the disambiguation cascade."""
    matches = list(_BROWSER_TOKENS.finditer(user_agent))
    if not matches:
        return _generic_match(user_agent, platform)

    tokens = _TokenList(
        [m.group("browser") for m in matches],
        [m.group("version") or "" for m in matches],
    )

    revision_match = _IE_REVISION.search(user_agent)
    revision = revision_match.group("version") if revision_match else None

    browser: Optional[str] = tokens.browsers[0]
    version: Optional[str] = tokens.versions[0]

    hit = tokens.find(*_BROWSER_ALIASES)
    if hit:
        key, name = hit
        browser = _BROWSER_ALIASES[name]
        candidate = tokens.versions[key]
        version = candidate if candidate[:1].isdigit() else None
        return platform, browser, version

    if tokens.find("Playstation Vita"):
        return "PlayStation Vita", "Browser", version

    hit = tokens.find("Kindle Fire", "Silk")
    if hit:
        key, name = hit
        browser = "Silk" if name == "Silk" else "Kindle"
        version = tokens.versions[key]
        if not version or not version[0].isdigit():
            version = tokens.version_of("Version")
        return "Kindle Fire", browser, version

    hit = tokens.find("NintendoBrowser")
    if hit or platform == "Nintendo 3DS":
        key = hit[0] if hit else 0
        return platform, "NintendoBrowser", tokens.versions[key]

    hit = tokens.find("Kindle")
    if hit:
        key, _ = hit
        return "Kindle", tokens.browsers[key], tokens.versions[key]

    hit = tokens.find("Opera")
    if hit:
        key, _ = hit
        version_hit = tokens.find("Version")
        if version_hit:
            key = version_hit[0]
        return platform, "Opera", tokens.versions[key]

    hit = tokens.find("Puffin")
    if hit:
        key, _ = hit
        version = tokens.versions[key]
        if len(version) > 3:
            suffix = version[-2:]
            if suffix.isalpha() and suffix.isupper():
                version = version[:-2]
                platform = _PUFFIN_FLAGS.get(suffix, platform)
        return platform, "Puffin", version

    hit = tokens.find(*_NAMED_BROWSERS)
    if hit:
        key, name = hit
        return platform, name, tokens.versions[key]

    if revision and tokens.find("Trident"):
        return platform, "MSIE", revision

    if browser == "AppleWebKit":
        key = 0
        if platform == "Android":
            browser = "Android Browser"
        elif platform and platform.startswith("BB"):
            browser = "BlackBerry Browser"
            platform = "BlackBerry"
        elif platform in ("BlackBerry", "PlayBook"):
            browser = "BlackBerry Browser"
        else:
            hit = tokens.find("Safari") or tokens.find("TizenBrowser")
            if hit:
                key, browser = hit
                version = tokens.versions[key]
            else:
                key = len(tokens.browsers) - 1
                browser = tokens.browsers[key]
                version = tokens.versions[key]
        version_hit = tokens.find("Version")
        if version_hit:
            version = tokens.versions[version_hit[0]]
        return platform, browser, version

    for name in tokens.browsers:
        if _PLAYSTATION.search(name):
            digits = re.sub(r"\D", "", name)
            return f"PlayStation {digits}", "NetFront", version

    return platform, browser, version


def parse_user_agent(user_agent: Optional[str]) -> UserAgentInfo:
    """Parse a User-Agent header into platform, browser and device facts.

    Never raises: unrecognised or malformed input yields empty fields.

    Args:
        user_agent: The User-Agent header value

    Returns:
        UserAgentInfo with empty strings for anything that could not be determined
    """
    user_agent = user_agent or ""
    device_class = get_device_class(user_agent)
    if not user_agent:
        return UserAgentInfo(platform="", browser="", browser_version="", device_class="")

    platform = _extract_platform(user_agent)
    platform, browser, version = _resolve_browser(user_agent, platform)

    return UserAgentInfo(
        platform=platform or "",
        browser=browser or "",
        browser_version=version or "",
        device_class=device_class,
    )
