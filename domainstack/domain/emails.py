"""
Alert content rendering - in-app summaries and email bodies.

Each of the four alerts (domain expiry, certificate expiry, verification
failing, verification revoked) has a short summary (title and one-line
message) stored for the in-app inbox and reused as the email subject,
plus plain text and HTML email bodies. The subject prefix follows the
notification severity. All dynamic values are escaped before they
reach the HTML body.
"""

from datetime import datetime
from html import escape

from .notifications import get_notification_severity
from .ports import EmailMessage, NotificationType, VerificationMethod

_BRAND = "Domainstack"

METHOD_DESCRIPTIONS = {
    VerificationMethod.DNS_TXT: "DNS TXT record",
    VerificationMethod.HTML_FILE: "HTML verification file",
    VerificationMethod.META_TAG: "meta tag",
}

SUBJECT_PREFIXES = {
    "critical": "🚨 ",
    "warning": "⚠️ ",
    "info": "",
}


def first_name(user_name: str | None) -> str:
    parts = (user_name or "").split()
    return parts[0] if parts else "there"


def format_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def plural_days(days: int) -> str:
    return f"{days} day{'' if days == 1 else 's'}"


def subject_prefix(notification_type: NotificationType) -> str:
    return SUBJECT_PREFIXES[get_notification_severity(notification_type)]


def domain_expiry_summary(
    domain_name: str, expiration_date: datetime, days_remaining: int, registrar: str | None
) -> tuple[str, str]:
    """Return the (title, message) pair for a registration expiry alert."""
    title = f"{domain_name} expires in {plural_days(days_remaining)}"
    registered_with = f" (registered with {registrar})" if registrar else ""
    message = f"Your domain {domain_name} will expire on {format_date(expiration_date)}{registered_with}."
    return title, message


def certificate_expiry_summary(
    domain_name: str, valid_to: datetime, days_remaining: int, issuer: str | None
) -> tuple[str, str]:
    """Return the (title, message) pair for a certificate expiry alert."""
    title = f"SSL certificate for {domain_name} expires in {plural_days(days_remaining)}"
    issued_by = f" (issued by {issuer})" if issuer else ""
    message = f"The SSL certificate for {domain_name}{issued_by} will expire on {format_date(valid_to)}."
    return title, message


def verification_failing_summary(domain_name: str, grace_period_days: int) -> tuple[str, str]:
    title = f"Verification failing for {domain_name}"
    message = (
        f"Verification for {domain_name} is failing. You have {grace_period_days} days "
        f"to fix it before access is revoked."
    )
    return title, message


def verification_revoked_summary(domain_name: str) -> tuple[str, str]:
    title = f"Verification revoked for {domain_name}"
    message = (
        f"Verification for {domain_name} has been revoked. The grace period has expired "
        f"without successful re-verification."
    )
    return title, message


def _layout(heading: str, paragraphs: list[str], dashboard_url: str, domain_name: str) -> str:
    """Wrap already-escaped paragraphs in the shared email shell."""
    body = "\n".join(
        f'          <p style="margin:0 0 16px; color:#374151; font-size:15px; line-height:1.65;">{p}</p>'
        for p in paragraphs
    )
    url = escape(dashboard_url, quote=True)
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(heading)}</title>
</head>
<body style="margin:0; padding:40px 0; background-color:#f6f9fc; font-family:-apple-system,'Segoe UI',Roboto,Helvetica,Arial,sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0">
    <tr><td align="center">
      <table role="presentation" width="560" cellpadding="0" cellspacing="0"
             style="background-color:#ffffff; border-radius:12px; box-shadow:0 1px 3px rgba(0,0,0,0.1);">
        <tr><td style="padding:32px 40px;">
          <h1 style="margin:0 0 24px; color:#1f2937; font-size:22px; font-weight:600;">{escape(heading)}</h1>
{body}
          <p style="margin:24px 0;">
            <a href="{url}" style="background-color:#111827; color:#ffffff; padding:10px 18px; border-radius:6px; text-decoration:none;">View Dashboard</a>
          </p>
          <hr style="border:none; border-top:1px solid #e5e7eb; margin:24px 0;">
          <p style="margin:0; color:#6b7280; font-size:12px;">
            You received this email because you're tracking {escape(domain_name)} on {_BRAND}.
            You can manage your notification settings in your dashboard.
          </p>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>
"""


def _footer_text(domain_name: str, dashboard_url: str) -> str:
    return (
        f"View your dashboard: {dashboard_url}\n\n"
        f"--\n"
        f"You received this email because you're tracking {domain_name} on {_BRAND}.\n"
    )


def render_domain_expiry_email(
    *,
    to: str,
    user_name: str | None,
    domain_name: str,
    expiration_date: datetime,
    days_remaining: int,
    notification_type: NotificationType,
    registrar: str | None,
    dashboard_url: str,
) -> EmailMessage:
    """Build the domain registration expiry alert."""
    prefix = subject_prefix(notification_type)
    urgent = get_notification_severity(notification_type) != "info"
    title, _ = domain_expiry_summary(domain_name, expiration_date, days_remaining, registrar)
    subject = f"{prefix}{title}"
    date_text = format_date(expiration_date)
    renew_with = registrar or "your registrar"

    text = (
        f"Hi {first_name(user_name)},\n\n"
        f"Your domain {domain_name} is set to expire in {plural_days(days_remaining)} on {date_text}.\n"
    )
    if registrar:
        text += f"Registrar: {registrar}\n"
    if urgent:
        text += "\nAction required: renew your domain immediately to avoid service interruption.\n"
    text += f"\nTo prevent losing ownership of this domain, renew it with {renew_with} before it expires.\n\n"
    text += _footer_text(domain_name, dashboard_url)

    paragraphs = [
        f"Hi {escape(first_name(user_name))},",
        f"Your domain <strong>{escape(domain_name)}</strong> is set to expire in "
        f"{plural_days(days_remaining)} on <strong>{escape(date_text)}</strong>.",
    ]
    if registrar:
        paragraphs.append(f"<strong>Registrar:</strong> {escape(registrar)}")
    if urgent:
        paragraphs.append(
            "<strong>Action Required:</strong> Renew your domain immediately to avoid service interruption."
        )
    paragraphs.append(
        f"To prevent losing ownership of this domain, make sure to renew it with "
        f"{escape(renew_with)} before it expires."
    )
    heading = f"{prefix}Domain Expiration Alert"
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout(heading, paragraphs, dashboard_url, domain_name),
        text=text,
    )


def render_certificate_expiry_email(
    *,
    to: str,
    user_name: str | None,
    domain_name: str,
    valid_to: datetime,
    days_remaining: int,
    notification_type: NotificationType,
    issuer: str | None,
    dashboard_url: str,
) -> EmailMessage:
    """Build the TLS certificate expiry alert."""
    prefix = subject_prefix(notification_type)
    title, _ = certificate_expiry_summary(domain_name, valid_to, days_remaining, issuer)
    subject = f"{prefix}{title}"
    date_text = format_date(valid_to)

    text = (
        f"Hi {first_name(user_name)},\n\n"
        f"The SSL certificate for {domain_name} expires in {plural_days(days_remaining)} on {date_text}.\n"
    )
    if issuer:
        text += f"Issuer: {issuer}\n"
    text += "\nRenew or reissue the certificate to keep visitors from seeing security warnings.\n\n"
    text += _footer_text(domain_name, dashboard_url)

    paragraphs = [
        f"Hi {escape(first_name(user_name))},",
        f"The SSL certificate for <strong>{escape(domain_name)}</strong> expires in "
        f"{plural_days(days_remaining)} on <strong>{escape(date_text)}</strong>.",
    ]
    if issuer:
        paragraphs.append(f"<strong>Issuer:</strong> {escape(issuer)}")
    paragraphs.append("Renew or reissue the certificate to keep visitors from seeing security warnings.")
    heading = f"{prefix}Certificate Expiration Alert"
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout(heading, paragraphs, dashboard_url, domain_name),
        text=text,
    )


def render_verification_failing_email(
    *,
    to: str,
    user_name: str | None,
    domain_name: str,
    verification_method: VerificationMethod | None,
    grace_period_days: int,
    dashboard_url: str,
) -> EmailMessage:
    """Build the warning sent on the first failed re-verification."""
    method = METHOD_DESCRIPTIONS.get(verification_method, "verification record")
    title, _ = verification_failing_summary(domain_name, grace_period_days)
    subject = f"{subject_prefix(NotificationType.VERIFICATION_FAILING)}{title}"

    text = (
        f"Hi {first_name(user_name)},\n\n"
        f"We couldn't verify your ownership of {domain_name} during our daily check. "
        f"The {method} we're looking for appears to be missing or incorrect.\n\n"
        f"Action required: you have {grace_period_days} days to restore verification "
        f"before your domain is removed from tracking.\n\n"
        f"Please check that your {method} is still in place.\n\n"
    )
    text += _footer_text(domain_name, dashboard_url)

    paragraphs = [
        f"Hi {escape(first_name(user_name))},",
        f"We couldn't verify your ownership of <strong>{escape(domain_name)}</strong> during our "
        f"daily check. The {escape(method)} we're looking for appears to be missing or incorrect.",
        f"<strong>Action Required:</strong> You have <strong>{grace_period_days} days</strong> "
        f"to restore verification before your domain is removed from tracking.",
        f"Please check that your {escape(method)} is still in place. If you intentionally removed it, "
        f"you can re-verify ownership from your dashboard.",
    ]
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout("Domain Verification Failing", paragraphs, dashboard_url, domain_name),
        text=text,
    )


def render_verification_revoked_email(
    *,
    to: str,
    user_name: str | None,
    domain_name: str,
    dashboard_url: str,
) -> EmailMessage:
    """Build the notice sent when the grace period ends without recovery."""
    title, _ = verification_revoked_summary(domain_name)
    subject = f"{subject_prefix(NotificationType.VERIFICATION_REVOKED)}{title}"

    text = (
        f"Hi {first_name(user_name)},\n\n"
        f"Verification for {domain_name} has been revoked. The grace period has expired "
        f"without successful re-verification.\n\n"
        f"You can verify the domain again at any time from your dashboard.\n\n"
    )
    text += _footer_text(domain_name, dashboard_url)

    paragraphs = [
        f"Hi {escape(first_name(user_name))},",
        f"Verification for <strong>{escape(domain_name)}</strong> has been revoked. The grace "
        f"period has expired without successful re-verification.",
        "You can verify the domain again at any time from your dashboard.",
    ]
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout("Domain Verification Revoked", paragraphs, dashboard_url, domain_name),
        text=text,
    )
