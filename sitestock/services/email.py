import time
from typing import Any, Dict, Optional
from urllib.parse import urljoin

from flask import current_app, render_template
from flask_mail import Message

from sitestock.extensions import db, mail
from sitestock.models.email_log import EMAIL_FAILED, EMAIL_SENT, EmailLog
from sitestock.observability import log_event


def absolute_url(path: str) -> str:
    """Links in emails must not depend on the request host."""
    return urljoin(current_app.config["APP_BASE_URL"].rstrip("/") + "/", path.lstrip("/"))


def send_email(
    to_email: str,
    subject: str,
    template: str,
    context: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
    member_id: Optional[int] = None,
) -> bool:
    """
    Render templates/email/<template>.{txt,html} and send.

    The EmailLog row is added to the caller's session and is committed with it,
    so an invite and its log entry land together. Returns False on SMTP failure;
    the caller decides whether that is fatal.
    """
    to_email = to_email.strip().lower()
    context = context or {}
    msg = Message(
        recipients=[to_email],
        subject=subject,
        body=render_template(f"email/{template}.txt", **context),
        html=render_template(f"email/{template}.html", **context),
    )
    elog = EmailLog(user_id=user_id, member_id=member_id, to_email=to_email, template=template,
                    subject=subject, meta={})
    db.session.add(elog)

    started = time.perf_counter()
    try:
        mail.send(msg)
    except (OSError, RuntimeError) as ex:
        elog.mark(EMAIL_FAILED, error=str(ex))
        log_event(current_app.logger, "mail_failed", template=template, to=to_email, error=str(ex),
                  latency_ms=int((time.perf_counter() - started) * 1000))
        return False

    elog.mark(EMAIL_SENT)
    log_event(current_app.logger, "mail_sent", template=template, to=to_email,
              latency_ms=int((time.perf_counter() - started) * 1000))
    return True


def send_invite_email(member, invite_url: str, inviter_name: Optional[str] = None) -> bool:
    site = current_app.config.get("SITE_NAME", "SiteStock")
    return send_email(
        to_email=member.email,
        subject=f"Join {site} as {member.role}",
        template="invite",
        context={
            "product_name": site,
            "action_url": invite_url,
            "member_name": member.display_name,
            "inviter_name": inviter_name,
            "role": member.role,
            "ttl_hours": current_app.config.get("INVITE_TTL_HOURS", 168),
        },
        member_id=member.id,
    )
