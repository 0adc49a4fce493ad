"""Tests for SSML assembly, HTML conversion and content keys."""
from __future__ import annotations

import hashlib

from tts_gateway.tts.keys import audio_path, derive_key, speech_marks_path
from tts_gateway.tts.ssml import build_ssml, end_ssml, html_blocks, html_to_ssml, html_to_text, start_ssml


class TestBuildSsml:
    def test_envelope(self):
        ssml = build_ssml("Hello", voice="en-US-JennyNeural", rate="1.0", language="en-US")
        assert ssml == (
            '<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="en-US">'
            '<voice name="en-US-JennyNeural"><prosody rate="1.0">'
            "Hello"
            "</prosody></voice></speak>"
        )

    def test_defaults_applied(self):
        assert build_ssml("Hi") == build_ssml("Hi", voice="en-US-JennyNeural", rate="1.0", language="en-US")

    def test_deterministic(self):
        a = build_ssml("Same text", voice="v", rate="1.2", language="de-DE")
        b = build_ssml("Same text", voice="v", rate="1.2", language="de-DE")
        assert a == b

    def test_text_not_escaped(self):
        """Inline SSML in utterance text passes through."""
        ssml = build_ssml('Wait <break time="200ms"/> now')
        assert '<break time="200ms"/>' in ssml

    def test_attributes_escaped(self):
        ssml = start_ssml(voice="a<b&c")
        assert 'name="a&lt;b&amp;c"' in ssml
        assert end_ssml() == "</prosody></voice></speak>"

    def test_every_option_changes_output(self):
        base = build_ssml("x", voice="a", rate="1.0", language="en-US")
        assert build_ssml("y", voice="a", rate="1.0", language="en-US") != base
        assert build_ssml("x", voice="b", rate="1.0", language="en-US") != base
        assert build_ssml("x", voice="a", rate="1.1", language="en-US") != base
        assert build_ssml("x", voice="a", rate="1.0", language="en-GB") != base


class TestHtml:
    def test_blocks(self):
        html = "<h1>Title</h1><p>First   paragraph.</p><div>Second<br>line</div>"
        assert html_blocks(html) == ["Title", "First paragraph.", "Second line"]

    def test_scripts_and_styles_skipped(self):
        html = "<style>p{color:red}</style><p>Visible</p><script>alert(1)</script>"
        assert html_blocks(html) == ["Visible"]

    def test_entities_decoded(self):
        assert html_to_text("<p>Fish &amp; chips</p>") == "Fish & chips"

    def test_to_text_joins_lines(self):
        assert html_to_text("<p>One</p><p>Two</p>") == "One\nTwo"

    def test_to_ssml_escapes_text(self):
        ssml = html_to_ssml("<p>a &lt; b</p><p>Two</p>", voice="v", rate="1.0", language="en-US")
        assert "<p>a &lt; b</p><p>Two</p>" in ssml
        assert ssml.startswith("<speak")
        assert ssml.endswith("</speak>")

    def test_empty_document(self):
        assert html_blocks("   ") == []


class TestKeys:
    def test_sha256_hex(self):
        key = derive_key("hello")
        assert key == hashlib.sha256(b"hello").hexdigest()
        assert len(key) == 64

    def test_unicode(self):
        assert derive_key("çalışma") == hashlib.sha256("çalışma".encode("utf-8")).hexdigest()

    def test_paths(self):
        assert audio_path("abc") == "speech/abc.mp3"
        assert speech_marks_path("abc") == "speech/abc.json"
        assert audio_path("abc", prefix="") == "abc.mp3"
        assert speech_marks_path("job-1", prefix="docs") == "docs/job-1.json"
