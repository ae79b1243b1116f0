"""Snippet sanitizer: reduce server-highlighted HTML to plain text plus <mark>."""
import html
from html.parser import HTMLParser
from typing import List

ALLOWED_TAG = "mark"
# Content of these is dropped entirely, not just the tags
_DROP_CONTENT = {"script", "style"}


class _SnippetParser(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []
        self._open_marks = 0
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _DROP_CONTENT:
            self._skip_depth += 1
        elif tag == ALLOWED_TAG and not self._skip_depth:
            self.parts.append("<mark>")
            self._open_marks += 1

    def handle_startendtag(self, tag, attrs):
        # <mark/> has no content to highlight
        pass

    def handle_endtag(self, tag):
        if tag in _DROP_CONTENT:
            if self._skip_depth:
                self._skip_depth -= 1
        elif tag == ALLOWED_TAG and self._open_marks and not self._skip_depth:
            self.parts.append("</mark>")
            self._open_marks -= 1

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(html.escape(data, quote=False))

    def result(self) -> str:
        self.close()
        return "".join(self.parts) + "</mark>" * self._open_marks


def sanitize_snippet(snippet: str) -> str:
    """
    Keep only attribute-free ``<mark>`` tags from a search snippet.

    Every other tag is removed but its text kept; script and style bodies,
    comments and processing instructions are dropped. Text is re-escaped so
    the result can be rendered as HTML as is.
    """
    if not snippet:
        return ""
    parser = _SnippetParser()
    parser.feed(snippet)
    return parser.result()
