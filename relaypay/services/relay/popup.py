"""Helpers for the popup status page used by the widget's OAuth flow."""

import json
from typing import Any


def post_message_action(data: dict[str, Any] | None = None, close: bool = False, target_origin: str = "*") -> str:
    """Build the inline script that reports `data` back to the opener window.

    With `close=True` the popup closes itself two seconds later.
    """

    try:
        message = json.dumps(data or {})
    except (TypeError, ValueError):
        return ""
    # Rendered inside <script>; a literal "</" would end the tag early.
    message = message.replace("</", "<\\/")
    origin = json.dumps(target_origin).replace("</", "<\\/")
    script = f"window.opener && window.opener.postMessage({message}, {origin});"
    if close:
        script += "\nsetTimeout(() => window.close(), 2000);"
    return script


def account_name(account: dict[str, Any] | None) -> str | None:
    """Display name of a connected account: business name, else the individual's name."""

    account = account or {}
    business_profile = account.get("business_profile") or {}
    individual = account.get("individual") or {}
    if business_profile.get("name"):
        return business_profile["name"]
    first = individual.get("first_name")
    last = individual.get("last_name")
    if not first and not last:
        return None
    return " ".join(part for part in (first, last) if part)
