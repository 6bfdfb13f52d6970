"""
Streaming HTML report renderer.

Every call writes its fragment straight to the file and flushes; nothing is
buffered and nothing can be taken back. The table of contents is not built
here: the footer script assembles it in the browser from the rendered
headings, once the whole document exists.

Each public call returns True on success and False when the file could not
be written. The caller owns the decision to abort.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TextIO

from jinja2 import Environment, FileSystemLoader, select_autoescape

from sqlbenchaudit.domain.report import Heading, Paragraph, RenderEvent, Table

logger = logging.getLogger(__name__)

# Template directory relative to this file
TEMPLATE_DIR = Path(__file__).parent / "templates"


class HtmlReportRenderer:
    """
    Open-once, close-once HTML sink.

    Usage:
        renderer = HtmlReportRenderer(path, title="SQL01 audit")
        renderer.open()
        renderer.emit(Heading(HeadingLevel.TOP, "checks", "Checklist"))
        renderer.close()
    """

    def __init__(self, path: Path | str, title: str = "SQL Server Security Audit", stream: TextIO | None = None):
        """
        Args:
            path: Report file
            title: Document title
            stream: Already-open text stream to write instead of ``path``
        """
        self.path = Path(path)
        self.title = title
        self._stream = stream
        self._handle: TextIO | None = None
        self._opened = False
        self._closed = False
        self.last_error: str | None = None

        self._env = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def open(self) -> bool:
        """Write the document header. Must be the first call."""
        if self._opened:
            raise RuntimeError("Report renderer already opened")
        self._opened = True

        if self._stream is not None:
            self._handle = self._stream
        else:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = self.path.open("w", encoding="utf-8", newline="\n")
            except OSError as e:
                return self._failed(e)

        logger.info("Writing report to %s", self.path)
        return self._write(
            "header.html",
            title=self.title,
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )

    def emit(self, event: RenderEvent) -> bool:
        """Append one heading, paragraph or table."""
        self._require_open()
        if isinstance(event, Heading):
            return self._write("heading.html", level=event.level.value, anchor=event.anchor, title=event.title)
        if isinstance(event, Paragraph):
            return self._write("paragraph.html", text=event.text, css_class=event.css_class)
        if isinstance(event, Table):
            return self._write("table.html", columns=event.columns, rows=event.rows, caption=event.caption)
        raise TypeError(f"Unsupported render event: {type(event).__name__}")

    def mark_incomplete(self, reason: str) -> bool:
        """
        Append a visible notice that the run aborted and release the file.

        The document is left unterminated; no further calls are accepted.
        """
        if not self.is_open or self._handle is None:
            return False
        ok = self._write("incomplete.html", reason=reason)
        self.release()
        return ok

    def release(self) -> None:
        """
        Stop accepting calls and close the file, whatever state it is in.

        Does not write anything; safe to call repeatedly and after close().
        """
        if self._opened:
            self._closed = True
        self._release()

    def _release(self) -> None:
        if self._handle is None or self._stream is not None:
            return
        try:
            self._handle.close()
        except OSError as e:
            self._failed(e)

    def close(self) -> bool:
        """Write the navigation script and close the document. Must be the last call."""
        self._require_open()
        ok = self._write("footer.html")
        self._closed = True
        self._release()
        ok = ok and self.last_error is None
        if ok:
            logger.info("Report complete: %s", self.path)
        return ok

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("Report renderer used before open()")
        if self._closed:
            raise RuntimeError("Report renderer used after close()")

    def _write(self, template_name: str, **context) -> bool:
        if self._handle is None:
            return False
        fragment = self._env.get_template(template_name).render(**context)
        try:
            self._handle.write(fragment)
            self._handle.flush()
        except OSError as e:
            return self._failed(e)
        return True

    def _failed(self, error: OSError) -> bool:
        self.last_error = str(error)
        logger.error("Report write failed for %s: %s", self.path, error)
        return False
