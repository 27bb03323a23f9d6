"""Caption tracks scraped from the YouTube watch page."""

import html
import json
import logging
import xml.etree.ElementTree as ET
from typing import Optional

import httpx

from models.transcript import TranscriptSegment, VideoTranscript, detect_platform, extract_video_id
from services.transcript_sources.base import TranscriptSource, TranscriptUnavailable
from services.video_downloader import get_random_user_agent

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}&hl=en"
PLAYER_RESPONSE_MARKER = "ytInitialPlayerResponse"
PREFERRED_LANGUAGES = ("en", "en-US", "en-GB")


def extract_player_response(page_html: str) -> dict:
    """Pull the ytInitialPlayerResponse JSON object out of a watch page."""
    marker = page_html.find(PLAYER_RESPONSE_MARKER)
    while marker != -1:
        start = page_html.find("{", marker)
        if start == -1:
            break
        try:
            data, _ = json.JSONDecoder().raw_decode(page_html, start)
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass
        marker = page_html.find(PLAYER_RESPONSE_MARKER, marker + len(PLAYER_RESPONSE_MARKER))
    raise TranscriptUnavailable("Watch page has no player response")


def select_caption_track(player_response: dict) -> dict:
    """Pick the best caption track: manual English, then any English, then first."""
    tracks = (
        player_response.get("captions", {})
        .get("playerCaptionsTracklistRenderer", {})
        .get("captionTracks", [])
    )
    if not tracks:
        raise TranscriptUnavailable("Video has no caption tracks")

    english = [t for t in tracks if str(t.get("languageCode", "")).split("-")[0] == "en"]
    manual_english = [t for t in english if t.get("kind") != "asr"]
    for candidates in (manual_english, english, tracks):
        if candidates:
            return candidates[0]
    raise TranscriptUnavailable("Video has no caption tracks")


def parse_timedtext_xml(xml_text: str) -> list[TranscriptSegment]:
    """Parse timedtext XML (<text start="" dur="">) into transcript segments."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise TranscriptUnavailable(f"Caption XML could not be parsed: {e}") from e

    cues = root.findall(".//text")
    segments = []
    for i, cue in enumerate(cues):
        text = html.unescape("".join(cue.itertext())).replace("\n", " ").strip()
        if not text:
            continue
        start = float(cue.get("start", 0))
        if cue.get("dur") is not None:
            duration = float(cue.get("dur"))
        elif i + 1 < len(cues):
            duration = float(cues[i + 1].get("start", start)) - start
        else:
            duration = 2.0
        segments.append(
            TranscriptSegment(index=len(segments), start_time=start, end_time=start + duration, text=text)
        )
    return segments


class PageCaptionsSource(TranscriptSource):
    """Reads caption tracks listed in the watch page's player response."""

    name = "page_captions"
    timeout_seconds = 30.0

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._client = http_client

    def supports(self, reference: str) -> bool:
        return detect_platform(reference) == "youtube" and extract_video_id(reference) is not None

    async def fetch(self, reference: str, session_id: Optional[str] = None) -> VideoTranscript:
        video_id = extract_video_id(reference)
        if not video_id:
            raise TranscriptUnavailable(f"No video id in {reference}")

        headers = {"User-Agent": get_random_user_agent(), "Accept-Language": "en-US,en;q=0.9"}
        cookies = {"CONSENT": "YES+1"}

        client = self._client or httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True)
        try:
            page = await client.get(WATCH_URL.format(video_id=video_id), headers=headers, cookies=cookies)
            page.raise_for_status()
            track = select_caption_track(extract_player_response(page.text))

            base_url = track.get("baseUrl")
            if not base_url:
                raise TranscriptUnavailable("Caption track has no URL")
            captions = await client.get(base_url, headers=headers)
            captions.raise_for_status()
        except httpx.HTTPError as e:
            raise TranscriptUnavailable(f"Caption request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        segments = parse_timedtext_xml(captions.text)
        if not segments:
            raise TranscriptUnavailable("Caption track is empty")

        logger.info(
            f"[PageCaptions] {len(segments)} cues for {video_id} "
            f"(language={track.get('languageCode')}, kind={track.get('kind', 'manual')})"
        )
        return VideoTranscript.build(reference, segments, method=self.name)
