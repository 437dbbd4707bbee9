import json
import re
import unicodedata
from typing import Iterable, Optional
from urllib.parse import quote

import requests
import urllib3

from errors import NetworkError
from logger import get_logger

log = get_logger(__name__)

BUILD_SITE   = "https://op.gg/vi/lol/champions"
COUNTER_SITE = "https://kicdo.com/counter"
ITEM_SITE    = "https://tocchien.net/trang-bi"
SKILL_SITE   = "https://www.wildriftfire.com/guide"
TFT_SITE     = "https://tftactics.gg/champions"

SKILL_IMAGE_FALLBACK = "https://www.mobafire.com/images/ability"

FEED_BASE     = "https://ddragon.leagueoflegends.com/cdn"
FEED_VERSIONS = "https://ddragon.leagueoflegends.com/api/versions.json"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

RESPONSE_KINDS = ("text", "binary-probe")

_NOT_FOUND = (404, 410)

_VI_LETTERS = "àáảãạăắằẳẵặâấầẩẫậđéèẻẽẹêếềểễệíìỉĩịóòỏõọôốồổỗộơớờởỡợúùủũụưứừửữựýỳỷỹỵ"


def make_session(
    user_agent: str = DEFAULT_USER_AGENT,
    accept_language: str = "vi-VN,vi;q=0.9,en-US;q=0.8,en;q=0.7",
    verify: bool = True,
) -> requests.Session:

    s = requests.Session()
    s.verify = verify
    if not verify:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    s.headers.update({
        "User-Agent":      user_agent,
        "Accept":          "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": accept_language,
        "Connection":      "keep-alive",
    })
    return s


def fetch(
    session: requests.Session,
    url: str,
    headers: Optional[dict] = None,
    timeout: float = 10,
    response_kind: str = "text",
):
    """
    GET ``url`` once. No retries: retrying is the operator's call.

    ``text`` returns the decoded body and raises NetworkError for anything
    that is not a 2xx/3xx answer. ``binary-probe`` discards the body and
    returns the status code; 404/410 come back as values so alternate URLs
    can be probed without exceptions.
    """
    if response_kind not in RESPONSE_KINDS:
        raise ValueError(f"unknown response kind: {response_kind!r}")

    probing = response_kind == "binary-probe"
    try:
        resp = session.get(url, headers=headers, timeout=timeout, stream=probing)
    except (requests.Timeout, requests.ConnectionError) as exc:
        log.warning("Network error for %s: %s", url, exc)
        raise NetworkError(url, exc) from exc
    except requests.RequestException as exc:
        raise NetworkError(url, exc) from exc

    status = resp.status_code
    log.debug("GET %s → HTTP %d", url, status)

    if probing:
        resp.close()
        if status < 400 or status in _NOT_FOUND:
            return status
        raise NetworkError(url, f"HTTP {status}", status)

    if status >= 400:
        raise NetworkError(url, f"HTTP {status}", status)
    return resp.text


def probe(session: requests.Session, url: str, timeout: float = 5) -> bool:
    return fetch(session, url, timeout=timeout, response_kind="binary-probe") < 400


def fetch_first(
    session: requests.Session,
    urls: Iterable[str],
    headers: Optional[dict] = None,
    timeout: float = 10,
) -> tuple[str, str]:
    """Return ``(url, body)`` for the first candidate that is not a 404."""
    last_exc = None
    for url in urls:
        try:
            return url, fetch(session, url, headers=headers, timeout=timeout)
        except NetworkError as exc:
            if not exc.not_found:
                raise
            log.debug("Not found, trying next candidate: %s", url)
            last_exc = exc
    if last_exc is None:
        raise ValueError("no candidate URLs given")
    raise last_exc


def fetch_json(session: requests.Session, url: str, timeout: float = 10):
    body = fetch(session, url, headers={"Accept": "application/json"}, timeout=timeout)
    try:
        return json.loads(body)
    except ValueError as exc:
        raise NetworkError(url, exc) from exc



def strip_diacritics(value: str) -> str:
    value = value.replace("đ", "d").replace("Đ", "D")
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def slugify(name: str) -> str:
    slug = strip_diacritics(name.lower())
    slug = re.sub(r"['’`]", "", slug)
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s-]+", "-", slug.strip())
    return slug.strip("-")


def slug_variants(name: str) -> list[str]:
    """
    Candidate slugs in the order the item site has historically used them:
    diacritics stripped, Vietnamese letters kept, then word characters only.
    """
    lowered = name.lower().strip()
    kept    = re.sub(rf"[^a-z0-9\-{_VI_LETTERS}]", "", re.sub(r"\s+", "-", lowered))
    word    = re.sub(r"[^\w\-]", "", re.sub(r"\s+", "-", lowered))

    variants = []
    for slug in (slugify(name), kept, word):
        if slug and slug not in variants:
            variants.append(slug)
    return variants


def champion_key(name: str) -> str:
    """op.gg champion path segment: lower-case, no spaces or punctuation."""
    return re.sub(r"[^a-z0-9]", "", strip_diacritics(name.lower()))


def build_page_url(champion: str, rank: str = "emerald_plus") -> str:
    return f"{BUILD_SITE}/{champion_key(champion)}/build?region=global&tier={rank}"


def counter_page_url(champion: str) -> str:
    return f"{COUNTER_SITE}/{champion_key(champion)}"


def item_page_urls(item_name: str) -> list[str]:
    return [f"{ITEM_SITE}/{quote(slug, safe='-')}/" for slug in slug_variants(item_name)]


def guide_slug(champion: str) -> str:
    """Guide-site path segment: ``Miss Fortune`` -> ``miss-fortune``, ``Kai'Sa`` -> ``kaisa``."""
    return re.sub(r"[.'’]", "", re.sub(r"\s+", "-", champion.strip().lower()))


def skill_page_url(champion: str) -> str:
    return f"{SKILL_SITE}/{guide_slug(champion)}"


def skill_image_fallback(champion: str, ability_name: str) -> str:
    ability = re.sub(r"[^a-z0-9\s-]", "", ability_name.lower())
    ability = re.sub(r"-+", "-", re.sub(r"\s+", "-", ability.strip()))
    return f"{SKILL_IMAGE_FALLBACK}/{guide_slug(champion)}-{ability}.png"


def tft_champion_url(champion: str) -> str:
    slug = re.sub(r"\s+", "-", champion.strip().lower())
    return f"{TFT_SITE}/{slug}/"



def asset_url(
    feed_base: str,
    version: str,
    locale: str,
    entity_kind: str,
    entity_id: str,
) -> str:
    return f"{feed_base.rstrip('/')}/{version}/data/{locale}/{entity_kind}/{entity_id}.json"


def asset_image_url(feed_base: str, version: str, group: str, filename: str) -> str:
    return f"{feed_base.rstrip('/')}/{version}/img/{group}/{filename}"


def latest_feed_version(
    session: requests.Session,
    versions_url: str = FEED_VERSIONS,
    timeout: float = 10,
) -> str:
    versions = fetch_json(session, versions_url, timeout=timeout)
    if not versions:
        raise NetworkError(versions_url, "empty version list")
    log.info("Asset feed latest version: %s", versions[0])
    return versions[0]
