"""
Transactional email composition
Every message carries a subject, a plain-text body and an HTML body
"""

from html import escape

from pydantic import BaseModel

from gclients import config


class EmailContent(BaseModel):
    subject: str
    text: str
    html: str


def _button(href: str, label: str, color: str = "#2563eb") -> str:
    return (
        f'<a href="{escape(href)}" style="background-color: {color}; color: white; padding: 12px 24px; '
        f'text-decoration: none; border-radius: 6px; display: inline-block; margin: 0 5px;">{escape(label)}</a>'
    )


def _layout(title: str, body: str, title_color: str = "#2563eb") -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: {title_color}; text-align: center;">{escape(title)}</h1>
  {body}
  <hr style="margin: 30px 0; border: none; border-top: 1px solid #e5e7eb;">
  <p style="color: #6b7280; font-size: 14px;">
    Questions? Reply to this email or contact our support team.<br>
    The {escape(config.APP_NAME)} Team
  </p>
</div>
"""


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


# ==================== ACCOUNT ====================

def verification_email(first_name: str, otp: str) -> EmailContent:
    minutes = config.OTP_EXPIRE_MINUTES
    html = _layout("Verify Your Email", f"""
  <p>Hi {escape(first_name)},</p>
  <p>Use the code below to verify your email address:</p>
  <p style="font-size: 32px; letter-spacing: 8px; text-align: center; font-weight: bold;">{escape(otp)}</p>
  <p>This code expires in {minutes} minutes. If you didn't create an account, ignore this email.</p>
""")
    text = (
        f"Hi {first_name},\n\n"
        f"Your verification code is: {otp}\n\n"
        f"This code expires in {minutes} minutes. If you didn't create an account, ignore this email.\n"
    )
    return EmailContent(subject=f"Verify Your Email Address - {config.APP_NAME}", text=text, html=html)


def password_reset_email(first_name: str, token: str) -> EmailContent:
    reset_url = f"{config.APP_URL}/auth/reset-password?token={token}"
    html = _layout("Reset Your Password", f"""
  <p>Hi {escape(first_name)},</p>
  <p>We received a request to reset your password.</p>
  <div style="text-align: center; margin: 30px 0;">{_button(reset_url, "Reset Password", "#dc3545")}</div>
  <p>This link expires in 1 hour. If you didn't request a reset, your password stays unchanged.</p>
""", title_color="#dc3545")
    text = (
        f"Hi {first_name},\n\n"
        f"Reset your password here: {reset_url}\n\n"
        "This link expires in 1 hour. If you didn't request a reset, your password stays unchanged.\n"
    )
    return EmailContent(subject=f"Reset Your Password - {config.APP_NAME}", text=text, html=html)


def account_verified_email(first_name: str) -> EmailContent:
    login_url = f"{config.APP_URL}/auth/login"
    html = _layout(f"Welcome to {config.APP_NAME}!", f"""
  <p>Hi {escape(first_name)},</p>
  <p>Your email has been verified. You can now browse tracks, enroll and follow your progress.</p>
  <div style="text-align: center; margin: 30px 0;">{_button(login_url, "Start Learning", "#28a745")}</div>
""")
    text = f"Hi {first_name},\n\nYour email has been verified. Log in at {login_url}\n"
    return EmailContent(subject=f"Welcome to {config.APP_NAME}!", text=text, html=html)


# ==================== CHECKOUT ====================

def checkout_welcome_email(first_name: str, track_name: str, login_email: str) -> EmailContent:
    login_url = f"{config.APP_URL}/login"
    html = _layout(f"Welcome to {config.APP_NAME}!", f"""
  <p>Hi {escape(first_name)},</p>
  <p>Your enrollment in <strong>{escape(track_name)}</strong> is confirmed and your account has been created.</p>
  <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <p><strong>Login Email:</strong> {escape(login_email)}</p>
    <p><strong>Password:</strong> The password you created during checkout</p>
  </div>
  <div style="text-align: center; margin: 30px 0;">{_button(login_url, "Login to Your Account")}</div>
""")
    text = (
        f"Hi {first_name},\n\n"
        f"Your enrollment in {track_name} is confirmed and your account has been created.\n"
        f"Login email: {login_email}\n"
        "Password: the password you created during checkout\n\n"
        f"Login: {login_url}\n"
    )
    return EmailContent(
        subject=f"Welcome to {config.APP_NAME}! Your {track_name} enrollment is confirmed",
        text=text,
        html=html,
    )


def pending_payment_email(first_name: str, email: str, track_name: str, amount: float, invoice_id: str) -> EmailContent:
    login_url = f"{config.APP_URL}/login"
    invoice_url = f"{config.APP_URL}/learner/invoice/{invoice_id}"
    html = _layout("Account Created - Payment Pending", f"""
  <p>Hi {escape(first_name)},</p>
  <p>We've created your account, but we couldn't process your payment for <strong>{escape(track_name)}</strong>.</p>
  <div style="background-color: #fef3c7; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #f59e0b;">
    <p><strong>Amount Due:</strong> {_money(amount)}</p>
    <p><strong>Invoice ID:</strong> {escape(invoice_id)}</p>
  </div>
  <p><strong>Login Email:</strong> {escape(email)}</p>
  <div style="text-align: center; margin: 30px 0;">
    {_button(login_url, "Login to Account")}{_button(invoice_url, "Complete Payment", "#059669")}
  </div>
""")
    text = (
        f"Hi {first_name},\n\n"
        f"We've created your account, but we couldn't process your payment for {track_name}.\n"
        f"Amount due: {_money(amount)}\n"
        f"Invoice ID: {invoice_id}\n\n"
        f"Complete your payment: {invoice_url}\n"
    )
    return EmailContent(
        subject=f"{config.APP_NAME} Account Created - Payment Pending for {track_name}",
        text=text,
        html=html,
    )


def enrollment_confirmed_email(first_name: str, track_name: str) -> EmailContent:
    dashboard_url = f"{config.APP_URL}/learner/dashboard"
    html = _layout("Enrollment Confirmed!", f"""
  <p>Hi {escape(first_name)},</p>
  <p>Your enrollment in <strong>{escape(track_name)}</strong> has been confirmed.</p>
  <div style="text-align: center; margin: 30px 0;">{_button(dashboard_url, "Access Your Course")}</div>
""")
    text = (
        f"Hi {first_name},\n\n"
        f"Your enrollment in {track_name} has been confirmed.\n"
        f"Access your course: {dashboard_url}\n"
    )
    return EmailContent(subject=f"Enrollment Confirmed: {track_name}", text=text, html=html)


def payment_failed_email(first_name: str, track_name: str, amount: float, invoice_id: str) -> EmailContent:
    invoice_url = f"{config.APP_URL}/learner/invoice/{invoice_id}"
    html = _layout("Payment Failed", f"""
  <p>Hi {escape(first_name)},</p>
  <p>We couldn't process your payment for <strong>{escape(track_name)}</strong>. An invoice has been created for you.</p>
  <div style="background-color: #fef3c7; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #f59e0b;">
    <p><strong>Amount Due:</strong> {_money(amount)}</p>
    <p><strong>Invoice ID:</strong> {escape(invoice_id)}</p>
  </div>
  <div style="text-align: center; margin: 30px 0;">{_button(invoice_url, "Complete Payment", "#059669")}</div>
""", title_color="#dc2626")
    text = (
        f"Hi {first_name},\n\n"
        f"We couldn't process your payment for {track_name}.\n"
        f"Amount due: {_money(amount)}\n"
        f"Invoice ID: {invoice_id}\n\n"
        f"Complete your payment: {invoice_url}\n"
    )
    return EmailContent(subject=f"Payment Failed - {track_name} Enrollment Pending", text=text, html=html)
