from __future__ import annotations

import html
from datetime import datetime

from digest_bot.schemas.article import SummaryResult

GREETING = "👋 Hi there! Here's your daily tech update:"
NO_ARTICLES_MESSAGE = "📭 <b>No New Articles</b>\n\nNo relevant AI/Software articles found in recent feeds."


def format_date_label(moment: datetime) -> str:
    return f"{moment:%A, %B} {moment.day}, {moment:%Y}"


def compose_digest(summaries: list[SummaryResult], date_label: str, provider_label: str | None = None) -> str:
    lines = [
        f"🤖 <b>Tech News Summary - {html.escape(date_label, quote=False)}</b>",
        "<i>AI-powered daily digest from your favorite tech sources</i>",
        "",
    ]
    for index, item in enumerate(summaries, start=1):
        lines.append(f"<b>{index}. {html.escape(item.title, quote=False)}</b>")
        lines.append(f"📰 <i>{html.escape(item.source, quote=False)}</i>")
        lines.append(html.escape(item.summary_text, quote=False))
        lines.append(f"🔗 {html.escape(item.link, quote=False)}")
        lines.append("")

    if provider_label:
        lines.append(f"<i>Powered by {html.escape(provider_label.upper(), quote=False)} AI</i>")
    return "\n".join(lines).rstrip() + "\n"


def personalize(message: str) -> str:
    return f"{GREETING}\n\n{message}"


def compose_delivery_report(sent: int, failed: int, total: int, article_count: int, at: datetime) -> str:
    return (
        "📊 <b>Delivery Report</b>\n\n"
        f"✅ <b>Sent:</b> {sent}/{total}\n"
        f"❌ <b>Failed:</b> {failed}\n"
        f"📄 <b>Articles:</b> {article_count}\n"
        f"⏰ <b>Time:</b> {at:%H:%M:%S}\n\n"
        "<i>Daily summary distribution complete</i>"
    )
