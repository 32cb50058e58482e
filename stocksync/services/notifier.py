"""Run notifications — markdown summary POSTed to a chat webhook.

Best effort: a failed or missing webhook never changes a run's outcome.
"""

import logging

import httpx

log = logging.getLogger("stocksync.notifier")

NOTIFY_TIMEOUT = 10


def should_notify(config, status: str) -> bool:
    if config is None or not config.webhook_url:
        return False
    if status == "success":
        return bool(config.notify_on_success)
    if status in ("partial", "failed"):
        return bool(config.notify_on_failure)
    if status == "no_changes":
        return bool(config.notify_on_no_changes)
    return False


def format_summary(summary) -> str:
    lines = [
        f"**Site**: {summary.site_name or summary.site_id}",
        f"**Status**: {summary.status}",
        f"**Checked**: {summary.total_checked}",
        f"**Set in stock**: {summary.synced_to_instock}",
        f"**Set out of stock**: {summary.synced_to_outofstock}",
    ]
    if summary.failed:
        lines.append(f"**Failed**: {summary.failed}")
    if summary.error_message:
        lines.append(f"**Error**: {summary.error_message[:300]}")
    lines.append(f"**Duration**: {summary.duration_ms / 1000:.1f}s")
    return "\n".join(lines)


async def send_notification(
    http: httpx.AsyncClient, url: str, title: str, content: str, ok: bool = True
) -> tuple[bool, str | None]:
    """POST a markdown message. Returns (sent, error)."""
    mark = "✅" if ok else "❌"
    payload = {"msgtype": "markdown", "markdown": {"content": f"### {mark} {title}\n{content}"}}
    try:
        resp = await http.post(url, json=payload, timeout=NOTIFY_TIMEOUT)
    except httpx.HTTPError as e:
        log.warning(f"Notification failed: {e}")
        return False, str(e)[:500]
    if resp.status_code >= 400:
        log.warning(f"Notification rejected: {resp.status_code} {resp.text[:200]}")
        return False, f"HTTP {resp.status_code}"
    try:
        body = resp.json()
    except ValueError:
        body = {}
    errcode = body.get("errcode", 0) if isinstance(body, dict) else 0
    if errcode:
        return False, f"errcode {errcode}: {body.get('errmsg', '')}"[:500]
    return True, None
