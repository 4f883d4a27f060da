"""Email templates for LearnHub.

HTML templates following the LearnHub visual identity:
- Primary indigo: #4F46E5
- Dark indigo: #3730A3
- Background: #F8FAFC
- Card: #FFFFFF
- Text: #111827
- Muted: #6B7280
- Border: #E5E7EB
- Warning: #F59E0B
"""

from datetime import datetime
from decimal import Decimal
from html import escape


# ==============================================================================
# Base Template
# ==============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta http-equiv="X-UA-Compatible" content="IE=edge">
  <title>{title} - LearnHub</title>
  <style>
    body, table, td, p, a, li {{
      -webkit-text-size-adjust: 100%;
      -ms-text-size-adjust: 100%;
    }}
    table, td {{
      mso-table-lspace: 0pt;
      mso-table-rspace: 0pt;
    }}
    @media only screen and (max-width: 620px) {{
      .container {{
        width: 100% !important;
        padding: 20px 10px !important;
      }}
      .content-table {{
        width: 100% !important;
      }}
      .content-padding {{
        padding: 24px 20px !important;
      }}
      .code-text {{
        font-size: 22px !important;
        letter-spacing: 2px !important;
      }}
    }}
  </style>
</head>
<body style="margin: 0; padding: 0; background-color: #F8FAFC; font-family: 'Inter', -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #F8FAFC;">
    <tr>
      <td align="center" style="padding: 40px 20px;" class="container">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color: #FFFFFF; border-radius: 12px; max-width: 600px;" class="content-table">
          <tr>
            <td style="padding: 32px 40px 24px; text-align: center; border-bottom: 1px solid #E5E7EB;">
              <h1 style="margin: 0; font-size: 28px; font-weight: 700; color: #4F46E5; letter-spacing: -0.5px;">
                LearnHub
              </h1>
            </td>
          </tr>
          <tr>
            <td style="padding: 40px;" class="content-padding">
              {content}
            </td>
          </tr>
          <tr>
            <td style="padding: 24px 40px; background-color: #F9FAFB; border-top: 1px solid #E5E7EB; border-radius: 0 0 12px 12px;">
              <p style="margin: 0; font-size: 12px; color: #6B7280; text-align: center; line-height: 1.6;">
                &copy; {year} LearnHub. All rights reserved.<br>
                This email was sent automatically, please do not reply.
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

PLAIN_FOOTER = """
---
(c) {year} LearnHub. All rights reserved.
This email was sent automatically, please do not reply.
"""

HEADING = (
    '<h1 style="margin: 0 0 16px; font-size: 24px; font-weight: 600; '
    'color: #111827; line-height: 1.3;">{text}</h1>'
)

PARAGRAPH = (
    '<p style="margin: 0 0 16px; font-size: 16px; color: #4B5563; '
    'line-height: 1.6;">{text}</p>'
)

BUTTON = (
    '<p style="margin: 24px 0; text-align: center;">'
    '<a href="{url}" style="display: inline-block; background-color: #4F46E5; '
    "color: #FFFFFF; padding: 12px 24px; text-decoration: none; "
    'border-radius: 8px; font-weight: 600;">{label}</a></p>'
)

CODE_BOX = """
<div style="background-color: #EEF2FF; border: 2px solid #4F46E5; border-radius: 12px; padding: 24px; text-align: center; margin: 24px 0;">
  <p style="margin: 0 0 8px; font-size: 14px; color: #4F46E5; font-weight: 500;">{label}</p>
  <p style="margin: 0; font-size: 28px; font-weight: 700; color: #3730A3; letter-spacing: 3px; font-family: 'Courier New', Courier, monospace;" class="code-text">{code}</p>
</div>
"""

WARNING_BOX = """
<div style="background-color: #FEF3C7; border-left: 4px solid #F59E0B; padding: 12px 16px; border-radius: 0 8px 8px 0; margin: 24px 0;">
  <p style="margin: 0; font-size: 14px; color: #92400E; line-height: 1.5;">{text}</p>
</div>
"""


def _wrap(title: str, content: str, plain_text: str) -> tuple[str, str]:
    year = datetime.now().year
    html = BASE_TEMPLATE.format(title=escape(title), content=content, year=year)
    return html, (plain_text.strip() + "\n" + PLAIN_FOOTER.format(year=year)).strip()


def format_price(amount: Decimal, currency: str) -> str:
    """Render a price, or "Free" for zero."""
    if amount <= 0:
        return "Free"
    return f"{currency} {amount:,.2f}"


# ==============================================================================
# Template: Enrollment Confirmation
# ==============================================================================


def render_enrollment_confirmation(
    student_name: str,
    program_title: str,
    course_count: int,
    price_label: str,
    cohort: str | None = None,
    dashboard_url: str | None = None,
) -> tuple[str, str]:
    """Render enrollment confirmation email.

    Returns:
        Tuple of (html_content, plain_text_content)
    """
    cohort_line = f" You joined the <strong>{escape(cohort)}</strong> cohort." if cohort else ""
    content = "".join(
        [
            HEADING.format(text="Enrollment confirmed"),
            PARAGRAPH.format(
                text=f"Hi <strong>{escape(student_name)}</strong>, you are now enrolled in "
                f"<strong>{escape(program_title)}</strong>.{cohort_line}"
            ),
            PARAGRAPH.format(
                text=f"The program has {course_count} course(s). Amount paid: {price_label}."
            ),
            BUTTON.format(url=dashboard_url, label="Start learning") if dashboard_url else "",
        ]
    )
    plain_text = f"""
Enrollment confirmed - LearnHub

Hi {student_name},

You are now enrolled in {program_title}.{f" Cohort: {cohort}." if cohort else ""}
The program has {course_count} course(s). Amount paid: {price_label}.
{f"Start learning: {dashboard_url}" if dashboard_url else ""}
"""
    return _wrap("Enrollment confirmed", content, plain_text)


# ==============================================================================
# Template: Enrollment Status Change
# ==============================================================================

STATUS_LABELS = {
    "active": "active",
    "completed": "completed",
    "suspended": "suspended",
    "dropped": "dropped",
    "pending": "pending",
}


def render_enrollment_status_change(
    student_name: str, program_title: str, status: str
) -> tuple[str, str]:
    """Render enrollment status change email."""
    label = STATUS_LABELS.get(status, status)
    content = "".join(
        [
            HEADING.format(text="Enrollment update"),
            PARAGRAPH.format(
                text=f"Hi <strong>{escape(student_name)}</strong>, your enrollment in "
                f"<strong>{escape(program_title)}</strong> is now <strong>{label}</strong>."
            ),
            PARAGRAPH.format(
                text="If you believe this is a mistake, please contact your program staff."
            ),
        ]
    )
    plain_text = f"""
Enrollment update - LearnHub

Hi {student_name},

Your enrollment in {program_title} is now {label}.
If you believe this is a mistake, please contact your program staff.
"""
    return _wrap("Enrollment update", content, plain_text)


# ==============================================================================
# Template: Scholarship Award
# ==============================================================================


def render_scholarship_award(
    program_title: str,
    code: str,
    discount_label: str,
    expires_at: datetime | None = None,
) -> tuple[str, str]:
    """Render scholarship award email with the redemption code."""
    expiry = expires_at.strftime("%B %d, %Y") if expires_at else None
    content = "".join(
        [
            HEADING.format(text="You received a scholarship"),
            PARAGRAPH.format(
                text=f"You were awarded a scholarship of <strong>{escape(discount_label)}</strong> "
                f"for <strong>{escape(program_title)}</strong>."
            ),
            CODE_BOX.format(label="Your scholarship code", code=escape(code)),
            PARAGRAPH.format(text="Enter this code when you enroll in the program."),
            WARNING_BOX.format(
                text=f"<strong>Important:</strong> this code expires on <strong>{expiry}</strong>."
            )
            if expiry
            else "",
        ]
    )
    plain_text = f"""
You received a scholarship - LearnHub

You were awarded a scholarship of {discount_label} for {program_title}.

Your scholarship code: {code}

Enter this code when you enroll in the program.
{f"IMPORTANT: this code expires on {expiry}." if expiry else ""}
"""
    return _wrap("Scholarship awarded", content, plain_text)


# ==============================================================================
# Template: Program Completion
# ==============================================================================


def render_program_completion(student_name: str, program_title: str) -> tuple[str, str]:
    """Render program completion congratulations email."""
    content = "".join(
        [
            HEADING.format(text="Congratulations!"),
            PARAGRAPH.format(
                text=f"Hi <strong>{escape(student_name)}</strong>, you completed every course in "
                f"<strong>{escape(program_title)}</strong>."
            ),
            PARAGRAPH.format(
                text="Your certificate will be available in your account shortly."
            ),
        ]
    )
    plain_text = f"""
Congratulations! - LearnHub

Hi {student_name},

You completed every course in {program_title}.
Your certificate will be available in your account shortly.
"""
    return _wrap("Program completed", content, plain_text)


# ==============================================================================
# Template: New Account (temporary password)
# ==============================================================================


def render_new_account(
    user_name: str,
    email: str,
    temporary_password: str,
    login_url: str | None = None,
) -> tuple[str, str]:
    """Render new account email with a temporary password."""
    content = "".join(
        [
            HEADING.format(text="Your LearnHub account"),
            PARAGRAPH.format(
                text=f"Hi <strong>{escape(user_name)}</strong>, an account was created for "
                f"<strong>{escape(email)}</strong> so you can join your program."
            ),
            CODE_BOX.format(label="Temporary password", code=escape(temporary_password)),
            WARNING_BOX.format(
                text="<strong>Important:</strong> you will be asked to choose a new "
                "password the first time you sign in."
            ),
            BUTTON.format(url=login_url, label="Sign in") if login_url else "",
        ]
    )
    plain_text = f"""
Your LearnHub account

Hi {user_name},

An account was created for {email} so you can join your program.

Temporary password: {temporary_password}

IMPORTANT: you will be asked to choose a new password the first time you sign in.
{f"Sign in: {login_url}" if login_url else ""}
"""
    return _wrap("Your account", content, plain_text)
