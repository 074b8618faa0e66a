"""Matrix message content builders for everything the bridge posts."""

from __future__ import annotations

from html import escape
from typing import Any, Optional

from review_bridge.schemas.review import ReviewRecord

HTML_FORMAT = "org.matrix.custom.html"
REVIEW_ID_KEY = "review_bridge.review_id"
NO_TEXT = "No review text provided."


def star_rating(rating: int) -> str:
    rating = max(0, min(5, rating))
    return "⭐" * rating + "☆" * (5 - rating)


def _thread_relation(content: dict[str, Any], thread_root: Optional[str]) -> dict[str, Any]:
    if thread_root:
        content["m.relates_to"] = {"rel_type": "m.thread", "event_id": thread_root}
    return content


def format_review_content(
    review: ReviewRecord,
    source_name: str = "Google Play",
    updated: bool = False,
) -> dict[str, Any]:
    """Content of the message that carries a review into a room."""
    stars = star_rating(review.rating)
    author = review.author_name or "Anonymous"
    device = f" ({review.device})" if review.device else ""
    version = f" - v{review.app_version}" if review.app_version else ""
    heading = "Updated" if updated else "New"
    text = review.text or NO_TEXT
    changed = review.last_changed_at

    body = (
        f"{heading} {source_name} review for {review.app_id}\n\n"
        f"{stars} by {author}{device}{version}\n\n"
        f"{text}"
    )
    formatted = (
        f"<h3>{heading} {escape(source_name)} review for <code>{escape(review.app_id)}</code></h3>"
        f"<p><strong>{stars}</strong> by <strong>{escape(author)}</strong>"
        f"{escape(device)}{escape(version)}</p>"
        f"<blockquote>{escape(text)}</blockquote>"
    )
    if changed is not None:
        stamp = changed.strftime("%Y-%m-%d %H:%M UTC")
        body += f"\n\n{stamp}"
        formatted += f"<p><small>{stamp}</small></p>"
    return {
        "msgtype": "m.text",
        "body": body,
        "format": HTML_FORMAT,
        "formatted_body": formatted,
        REVIEW_ID_KEY: review.review_id,
        "review_bridge.app_id": review.app_id,
        "review_bridge.rating": review.rating,
    }


def format_notice(message: str, thread_root: Optional[str] = None) -> dict[str, Any]:
    content = {
        "msgtype": "m.notice",
        "body": message,
        "format": HTML_FORMAT,
        "formatted_body": f"<p>{escape(message)}</p>",
    }
    return _thread_relation(content, thread_root)


def format_error(message: str, thread_root: Optional[str] = None) -> dict[str, Any]:
    content = {
        "msgtype": "m.notice",
        "body": f"Bridge error: {message}",
        "format": HTML_FORMAT,
        "formatted_body": f"<p><strong>Bridge error:</strong><br><code>{escape(message)}</code></p>",
    }
    return _thread_relation(content, thread_root)


def format_reply_confirmation(
    review_id: str,
    success: bool,
    error: Optional[str] = None,
    source_name: str = "Google Play",
    thread_root: Optional[str] = None,
) -> dict[str, Any]:
    if success:
        body = f"Reply to review {review_id} sent to {source_name}."
        formatted = f"<p><strong>{escape(body)}</strong></p>"
    else:
        body = f"Failed to send reply to review {review_id} to {source_name}"
        formatted = f"<p><strong>{escape(body)}</strong>"
        if error:
            body += f": {error}"
            formatted += f"<br><code>{escape(error)}</code>"
        formatted += "</p>"
    content = {
        "msgtype": "m.notice",
        "body": body,
        "format": HTML_FORMAT,
        "formatted_body": formatted,
        REVIEW_ID_KEY: review_id,
    }
    return _thread_relation(content, thread_root)
