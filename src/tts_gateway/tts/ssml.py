"""
SSML assembly and HTML conversion.

Utterances are wrapped in a fixed envelope:

    <speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="en-US">
      <voice name="en-US-JennyNeural"><prosody rate="1.0">TEXT</prosody></voice>
    </speak>

build_ssml() does not escape TEXT: utterance text may already carry SSML
tags (<break/>, <emphasis>) and callers are responsible for sanitizing it.
Attribute values are always escaped.
"""
from __future__ import annotations

import re
from html.parser import HTMLParser
from typing import List, Optional
from xml.sax.saxutils import escape, quoteattr

from tts_gateway.core.config import Defaults

_SSML_NS = "http://www.w3.org/2001/10/synthesis"

# Block-level tags that end a paragraph in document HTML
_BLOCK_TAGS = {
    "p", "div", "section", "article", "blockquote", "li", "ul", "ol",
    "h1", "h2", "h3", "h4", "h5", "h6", "tr", "table", "pre", "header", "footer",
}
_SKIP_TAGS = {"script", "style", "head", "title", "noscript", "template"}

_WS_RE = re.compile(r"\s+")


def start_ssml(
    voice: Optional[str] = None,
    rate: Optional[str] = None,
    language: Optional[str] = None,
) -> str:
    """Opening half of the envelope, up to and including <prosody>."""
    lang = language or Defaults.TTS_DEFAULT_LANGUAGE
    voice_name = voice or Defaults.TTS_DEFAULT_VOICE
    prosody_rate = rate or Defaults.TTS_DEFAULT_RATE
    return (
        f'<speak version="1.0" xmlns="{_SSML_NS}" xml:lang={quoteattr(lang)}>'
        f"<voice name={quoteattr(voice_name)}>"
        f"<prosody rate={quoteattr(str(prosody_rate))}>"
    )


def end_ssml() -> str:
    return "</prosody></voice></speak>"


def build_ssml(
    text: str,
    voice: Optional[str] = None,
    rate: Optional[str] = None,
    language: Optional[str] = None,
) -> str:
    """
    Wrap `text` in the SSML envelope.

    Pure function: the same arguments always yield byte-identical output,
    which is what makes the derived cache key stable.
    """
    return start_ssml(voice=voice, rate=rate, language=language) + text + end_ssml()


class _BlockCollector(HTMLParser):
    """Collects text of an HTML document grouped into block-level paragraphs."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.blocks: List[str] = []
        self._current: List[str] = []
        self._skip_depth = 0

    def _flush(self) -> None:
        text = _WS_RE.sub(" ", "".join(self._current)).strip()
        if text:
            self.blocks.append(text)
        self._current = []

    def handle_starttag(self, tag, attrs):
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self._flush()
        elif tag == "br":
            self._current.append(" ")

    def handle_startendtag(self, tag, attrs):
        if tag == "br":
            self._current.append(" ")

    def handle_endtag(self, tag):
        if tag in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in _BLOCK_TAGS:
            self._flush()

    def handle_data(self, data):
        if self._skip_depth == 0:
            self._current.append(data)

    def close(self):
        super().close()
        self._flush()


def html_blocks(html: str) -> List[str]:
    """Split document HTML into plain-text paragraphs."""
    parser = _BlockCollector()
    parser.feed(html)
    parser.close()
    return parser.blocks


def html_to_text(html: str) -> str:
    """Plain text of an HTML document, one paragraph per line."""
    return "\n".join(html_blocks(html))


def html_to_ssml(
    html: str,
    voice: Optional[str] = None,
    rate: Optional[str] = None,
    language: Optional[str] = None,
) -> str:
    """
    Convert document HTML into SSML.

    Each block becomes a <p> element; text content is XML-escaped since,
    unlike utterance text, it is never meant to carry SSML markup.
    """
    body = "".join(f"<p>{escape(block)}</p>" for block in html_blocks(html))
    return build_ssml(body, voice=voice, rate=rate, language=language)
