"""
HTML fragments for protected forms.

The CAPTCHA fragment is self-contained (question, answer input, hidden
token) and is placed immediately before the form's first submit control.
"""

from __future__ import annotations

import re
from html import escape

from bastion.security.types import CaptchaChallenge

CAPTCHA_TOKEN_FIELD = "bastion_captcha_token"
CAPTCHA_ANSWER_FIELD = "bastion_captcha_answer"

# First <input type=submit>, <input type=image> or <button> that is not type=button/reset.
_SUBMIT_RE = re.compile(
    r"<input\b[^>]*\stype\s*=\s*[\"']?(?:submit|image)\b[^>]*>"
    r"|<button\b(?![^>]*\stype\s*=\s*[\"']?(?:button|reset)\b)[^>]*>",
    re.IGNORECASE,
)


def captcha_fragment(challenge: CaptchaChallenge, input_class: str = "") -> str:
    classes = f"bastion-captcha-answer {input_class}".strip()
    return (
        '<div class="bastion-captcha-wrap">'
        f'<label class="bastion-captcha-label" for="{CAPTCHA_ANSWER_FIELD}">Security Check</label>'
        '<div class="bastion-captcha-question">'
        f'<span class="bastion-captcha-text">{escape(challenge.question)} = </span>'
        f'<input type="number" name="{CAPTCHA_ANSWER_FIELD}" id="{CAPTCHA_ANSWER_FIELD}" '
        f'class="{escape(classes)}" required placeholder="Your answer" />'
        "</div>"
        f'<input type="hidden" name="{CAPTCHA_TOKEN_FIELD}" value="{escape(challenge.token)}" />'
        "</div>"
    )


def honeypot_fragment(field_name: str) -> str:
    return (
        f'<input type="text" name="{escape(field_name)}" value="" '
        'style="display: none !important; position: absolute; left: -9999px;" '
        'tabindex="-1" autocomplete="off" />'
    )


def inject_before_submit(html: str, fragment: str) -> str:
    """
    Insert ``fragment`` before the first submit control.

    Forms without a submit control get the fragment before ``</form>``,
    or appended when there is no closing tag either.
    """
    match = _SUBMIT_RE.search(html)
    if match:
        return html[: match.start()] + fragment + html[match.start():]
    close = re.search(r"</form\s*>", html, re.IGNORECASE)
    if close:
        return html[: close.start()] + fragment + html[close.start():]
    return html + fragment
