"""Digest email for newly tagged posts."""

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

from tracker_core.domain.services.tokens import create_signed_token

MAX_DIGEST_POSTS = 20
BODY_SNIPPET_LENGTH = 150


@dataclass
class TaggedPost:
    """A post as listed in a digest, once per matching tag."""

    content_item_id: int
    title: str
    body: Optional[str]
    source_name: str
    author: str
    tag_name: str
    tag_color: str


@dataclass
class DigestEmail:
    subject: str
    html: str
    text: str
    headers: dict[str, str] = field(default_factory=dict)


def escape_html(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def truncate_body(body: Optional[str]) -> str:
    if not body:
        return ""
    if len(body) <= BODY_SNIPPET_LENGTH:
        return body
    return body[:BODY_SNIPPET_LENGTH] + "..."


def group_by_tag(posts: list[TaggedPost]) -> dict[str, tuple[str, list[TaggedPost]]]:
    """Group posts by tag name in first-seen order.

    A post with several tags appears under each of them.
    """
    groups: dict[str, tuple[str, list[TaggedPost]]] = {}
    for post in posts:
        if post.tag_name not in groups:
            groups[post.tag_name] = (post.tag_color, [])
        groups[post.tag_name][1].append(post)
    return groups


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def build_digest_email(
    tenant_id: int,
    posts: list[TaggedPost],
    app_url: str,
    secret_key: str,
) -> DigestEmail:
    """Render the notification digest for one tenant.

    Args:
        tenant_id: Recipient, encoded in the unsubscribe token.
        posts: Tagged posts, newest first.
        app_url: Base URL of the web application.
        secret_key: Key for signing the unsubscribe token.

    Returns:
        DigestEmail with subject, HTML and plain text bodies, and
        one-click unsubscribe headers.
    """
    app_url = app_url.rstrip("/")
    total = len(posts)
    shown = posts[:MAX_DIGEST_POSTS]
    overflow = total - len(shown)

    subject = f"Social Tracker: {total} new tagged post{_plural(total)}"

    token = create_signed_token(tenant_id, secret_key)
    unsubscribe_url = f"{app_url}/api/unsubscribe?token={quote(token, safe='')}"
    settings_url = f"{app_url}/settings/account"
    dashboard_url = f"{app_url}/dashboard"

    html_parts = [
        "<p>Hi,</p>\n",
        f"<p>You have {total} new post{_plural(total)} matching your tags:</p>\n",
    ]
    text_parts = [
        "Hi,\n\n",
        f"You have {total} new post{_plural(total)} matching your tags:\n\n",
    ]

    for tag_name, (color, tag_posts) in group_by_tag(shown).items():
        html_parts.append(
            '<h3 style="margin: 16px 0 8px 0;"><span style="display: inline-block; '
            "padding: 2px 8px; border-radius: 4px; "
            f"background-color: {escape_html(color)}; color: #fff; font-size: 14px;\">"
            f"{escape_html(tag_name)}</span></h3>\n"
        )
        text_parts.append(f"[{tag_name}]\n")

        for post in tag_posts:
            post_url = f"{app_url}/dashboard/posts/{post.content_item_id}"
            snippet = truncate_body(post.body)

            html_parts.append('<div style="margin: 0 0 12px 16px;">\n')
            html_parts.append(
                f'  <a href="{escape_html(post_url)}" style="color: #2563eb; '
                f'text-decoration: none; font-weight: 600;">{escape_html(post.title)}</a>\n'
            )
            html_parts.append(
                f'  <div style="color: #6b7280; font-size: 13px;">'
                f"r/{escape_html(post.source_name)} · u/{escape_html(post.author)}</div>\n"
            )
            if snippet:
                html_parts.append(
                    f'  <div style="color: #374151; font-size: 13px; margin-top: 4px;">'
                    f"{escape_html(snippet)}</div>\n"
                )
            html_parts.append("</div>\n")

            text_parts.append(f"  {post.title}\n")
            text_parts.append(f"  r/{post.source_name} · u/{post.author}\n")
            if snippet:
                text_parts.append(f"  {snippet}\n")
            text_parts.append(f"  {post_url}\n\n")

    if overflow > 0:
        html_parts.append(
            f'<p style="margin-top: 16px;">and {overflow} more: '
            f'<a href="{escape_html(dashboard_url)}" style="color: #2563eb;">'
            "view all in Social Tracker</a></p>\n"
        )
        text_parts.append(f"and {overflow} more: view all in Social Tracker: {dashboard_url}\n\n")

    html_parts.append('<hr style="border: none; border-top: 1px solid #e5e7eb; margin: 24px 0;" />\n')
    html_parts.append(
        '<p style="color: #9ca3af; font-size: 12px;">You\'re receiving this because you have '
        f'email notifications enabled. <a href="{escape_html(settings_url)}" '
        'style="color: #6b7280;">Manage preferences</a></p>\n'
    )
    text_parts.append("---\n")
    text_parts.append(
        "You're receiving this because you have email notifications enabled. "
        f"Manage preferences: {settings_url}\n"
    )

    return DigestEmail(
        subject=subject,
        html="".join(html_parts),
        text="".join(text_parts).rstrip(),
        headers={
            "List-Unsubscribe": f"<{unsubscribe_url}>",
            "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
        },
    )


__all__ = [
    "TaggedPost",
    "DigestEmail",
    "build_digest_email",
    "escape_html",
    "truncate_body",
    "group_by_tag",
    "MAX_DIGEST_POSTS",
    "BODY_SNIPPET_LENGTH",
]
