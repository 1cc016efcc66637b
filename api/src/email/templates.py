"""HTML email layout.

Enrolment messages are authored as plain text or HTML fragments; this module
wraps a fragment in the shared layout and converts plain text to HTML.
"""

import html
from datetime import UTC, datetime


# ==============================================================================
# Base Template
# ==============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>
    body, table, td, p, a, li {{
      -webkit-text-size-adjust: 100%;
      -ms-text-size-adjust: 100%;
    }}
    @media only screen and (max-width: 620px) {{
      .content-table {{
        width: 100% !important;
      }}
      .content-padding {{
        padding: 24px 20px !important;
      }}
    }}
  </style>
</head>
<body style="margin: 0; padding: 0; background-color: #FAFBFC; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #FAFBFC;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color: #FFFFFF; border-radius: 12px; max-width: 600px;" class="content-table">
          <tr>
            <td style="padding: 40px; font-size: 16px; color: #1A1D23; line-height: 1.6;" class="content-padding">
              {content}
            </td>
          </tr>
          <tr>
            <td style="padding: 24px 40px; background-color: #F9FAFB; border-top: 1px solid #E5E7EB;">
              <p style="margin: 0; font-size: 12px; color: #8E959E; text-align: center;">
                &copy; {year} {site_name}
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def is_html(text: str) -> bool:
    """Treat any text containing a tag opener as HTML."""
    return "<" in text


def text_to_html(text: str) -> str:
    """Escape plain text and keep its line breaks."""
    return html.escape(text).replace("\n", "<br>\n")


def render_layout(title: str, content: str, site_name: str) -> str:
    """Wrap an HTML fragment in the shared email layout.

    Args:
        title: Document title (usually the subject)
        content: HTML fragment for the message body
        site_name: Footer name

    Returns:
        Complete HTML document
    """
    return BASE_TEMPLATE.format(
        title=html.escape(title),
        content=content,
        year=datetime.now(UTC).year,
        site_name=html.escape(site_name),
    )
