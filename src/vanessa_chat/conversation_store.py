from __future__ import annotations

from pathlib import Path

import structlog

log = structlog.get_logger()


def make_preview(content: str, limit: int = 200) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


class ConversationHistoryStore:
    """
    Plain-text conversation log used as prior context for chat prompts.

    Stores ONE blob at `path`. Reads never raise: a missing, empty or
    unreadable file means "no prior conversation".
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> str | None:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.warning("conversation_file_missing", path=str(self.path))
            return None
        except (OSError, UnicodeDecodeError) as e:
            log.error("conversation_file_unreadable", path=str(self.path), error=str(e))
            return None
        if not content:
            log.info("conversation_file_empty", path=str(self.path))
            return None
        log.info("conversation_file_loaded", path=str(self.path), chars=len(content))
        return content

    def preview(self, limit: int = 200) -> str | None:
        content = self.read()
        return make_preview(content, limit) if content is not None else None

    def append_exchange(self, question: str, answer: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        needs_gap = self.path.is_file() and self.path.stat().st_size > 0
        with self.path.open("a", encoding="utf-8") as fh:
            if needs_gap:
                fh.write("\n")
            fh.write(f"customer: {question.strip()}\nsupport: {answer.strip()}\n")
        log.info("conversation_exchange_appended", path=str(self.path), question_chars=len(question))
