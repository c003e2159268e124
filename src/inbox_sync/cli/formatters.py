from __future__ import annotations

from typing import Any, Dict, List, Optional


def table(headers: List[str], rows: List[List[str]], max_widths: Optional[Dict[int, int]] = None) -> str:
    """Format data as ASCII table."""
    if not rows:
        return "No data"

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(str(cell)))

    if max_widths:
        for i, max_w in max_widths.items():
            if i < len(widths):
                widths[i] = min(widths[i], max_w)

    header_line = "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "  ".join("-" * w for w in widths)
    row_lines = [
        "  ".join(str(cell)[: widths[i]].ljust(widths[i]) for i, cell in enumerate(row))
        for row in rows
    ]
    return "\n".join([header_line, separator] + row_lines)


def thread_rows(threads: List[Dict[str, Any]]) -> List[List[str]]:
    """Rows for the inbox listing: participant, name, unread, last activity, preview."""
    rows = []
    for thread in threads:
        last = thread.get("last_message") or {}
        preview = (last.get("body") or last.get("subject") or "").replace("\n", " ")
        rows.append(
            [
                thread["participant_id"],
                thread.get("name") or "",
                str(thread.get("unread_count", 0)),
                (last.get("created_at") or "")[:19],
                preview,
            ]
        )
    return rows


def message_rows(messages: List[Dict[str, Any]]) -> List[List[str]]:
    rows = []
    for message in messages:
        rows.append(
            [
                (message.get("created_at") or "")[:19],
                "staff" if message.get("is_admin_reply") else (message.get("author_name") or "customer"),
                message.get("status", ""),
                message.get("body", "").replace("\n", " "),
            ]
        )
    return rows
