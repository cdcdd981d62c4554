from html import escape
from typing import Optional

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #f8f9fa; padding: 20px; text-align: center;">
    <h2 style="color: #333;">{heading}</h2>
  </div>
  <div style="padding: 20px; border: 1px solid #e9ecef; border-top: none;">
    {body}
  </div>
  <div style="background-color: #f8f9fa; padding: 15px; text-align: center; font-size: 12px; color: #6c757d;">
    <p>This is an automated message. Please do not reply to this email.</p>
  </div>
</div>
"""

_BUTTON = (
    '<div style="margin: 30px 0; text-align: center;">'
    '<a href="{href}" style="background-color: #0f172a; color: white; padding: 12px 24px; '
    'text-decoration: none; border-radius: 4px; display: inline-block;">{label}</a></div>'
)


def signature_request_email(document_name: str, signing_link: str,
                            signatory_name: Optional[str] = None,
                            message: Optional[str] = None,
                            validity_days: int = 7) -> str:
    body = [
        f"<p>Hello {escape(signatory_name or 'there')},</p>",
        f"<p>You have been requested to sign the document: <strong>{escape(document_name)}</strong></p>",
    ]
    if message:
        body.append(f"<p>Message: {escape(message)}</p>")
    body.append(_BUTTON.format(href=escape(signing_link, quote=True), label="Review &amp; Sign Document"))
    body.append(f'<p style="color: #6c757d; font-size: 14px;">This link will expire in {validity_days} days.</p>')
    return _LAYOUT.format(heading="Document Signature Request", body="\n    ".join(body))


def completion_email(document_name: str, document_link: str, owner_name: Optional[str] = None) -> str:
    body = [
        f"<p>Hello {escape(owner_name or 'there')},</p>",
        f"<p>Great news! Your document <strong>{escape(document_name)}</strong> has been signed by all parties.</p>",
        _BUTTON.format(href=escape(document_link, quote=True), label="View Completed Document"),
    ]
    return _LAYOUT.format(heading="Document Fully Signed", body="\n    ".join(body))
