"""Best-effort helpers resolving stream pages into direct links and thumbnails."""
import logging
from typing import Optional

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 10


def _fetch_html(url: str) -> Optional[BeautifulSoup]:
    try:
        response = requests.get(url, timeout=TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Could not fetch stream page {url}: {e}")
        return None
    return BeautifulSoup(response.text, 'html.parser')


def get_youtube_direct_url(url: str) -> Optional[str]:
    """
    Find the watch?v= link on a YouTube channel's /live page.

    Channel /live links stop pointing at the stream once it ends, so
    announcements link to the video itself.

    Args:
        url: YouTube channel or live URL

    Returns:
        Direct video URL or None if none was found
    """
    soup = _fetch_html(url)
    if soup is None:
        return None

    direct_url = None
    for link in soup.find_all('link'):
        href = link.get('href', '')
        if '?v=' in href:
            direct_url = href
    return direct_url


def make_url_direct(url: str) -> str:
    """Return the direct video URL for YouTube links, otherwise url unchanged."""
    if 'youtube' in url and '?v=' not in url:
        direct_url = get_youtube_direct_url(url)
        if direct_url:
            return direct_url
    return url


def get_twitch_profile_picture(url: str) -> str:
    soup = _fetch_html(url)
    if soup is None:
        return ''
    meta = soup.find('meta', attrs={'property': 'og:image'})
    return meta.get('content', '') if meta else ''


def get_youtube_thumbnail(url: str) -> str:
    if '?v=' not in url:
        url = get_youtube_direct_url(url) or ''
    if '?v=' not in url:
        return ''
    video_id = url.split('?v=', 1)[1].split('&', 1)[0]
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def get_video_thumbnail(url: str) -> str:
    """
    Thumbnail for a stream URL.

    Args:
        url: Twitch, YouTube or Facebook stream URL

    Returns:
        Image URL, or "" when the platform is unknown or the lookup failed
    """
    if 'twitch' in url:
        return get_twitch_profile_picture(url)
    if 'youtube' in url:
        return get_youtube_thumbnail(url)
    if 'facebook' in url:
        parts = url.split('/')
        if len(parts) > 3 and parts[3]:
            return f"https://graph.facebook.com/{parts[3]}/picture?type=large"
    return ''
