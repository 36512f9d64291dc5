"""Case documents (markdown + YAML frontmatter) and chat transcript files."""

import json
from pathlib import Path

import frontmatter

from casechat.evaluation import format_transcript
from casechat.history import coerce_history
from casechat.models import CaseData, ChatMessage, ChatTranscript


def load_case(file_path: Path) -> CaseData:
    """Parse a case document.

    Frontmatter keys: case_id, case_title, protagonist, chat_question,
    arguments_for, arguments_against. The body is the case content.
    case_id defaults to the file stem.
    """
    post = frontmatter.load(str(file_path))
    meta = dict(post.metadata)
    defaults = CaseData(case_id=file_path.stem)
    return CaseData(
        case_id=str(meta.get("case_id") or defaults.case_id),
        case_title=str(meta.get("case_title") or defaults.case_title),
        protagonist=str(meta.get("protagonist") or defaults.protagonist),
        chat_question=str(meta.get("chat_question") or defaults.chat_question),
        arguments_for=str(meta.get("arguments_for") or ""),
        arguments_against=str(meta.get("arguments_against") or ""),
        case_content=post.content.strip(),
    )


def load_messages(file_path: Path) -> list[ChatMessage]:
    """A JSON list of {role: user|model, content} objects."""
    data = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{file_path}: expected a JSON list of messages")
    return coerce_history(data)


def load_transcripts(
    file_path: Path,
    student_label: str = "Student",
    protagonist_label: str = "CEO",
) -> list[ChatTranscript]:
    """A JSON list of {chatId, transcript} or {chatId, messages: [...]} objects."""
    data = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{file_path}: expected a JSON list of chats")

    chats: list[ChatTranscript] = []
    for entry in data:
        chat_id = entry.get("chatId") or entry.get("chat_id")
        if not chat_id:
            raise ValueError(f"{file_path}: every chat needs a chatId")
        if "messages" in entry:
            transcript = format_transcript(
                coerce_history(entry["messages"]), student_label, protagonist_label
            )
        else:
            transcript = str(entry.get("transcript") or "")
        chats.append(ChatTranscript(chat_id=str(chat_id), transcript=transcript))
    return chats
