"""
AWS SES Email Service for password recovery emails.

Handles email formatting and AWS SES integration.
"""

import logging
from typing import Optional
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending emails via AWS SES.

    Every send method returns a bool instead of raising, so callers can
    treat delivery as best effort.
    """

    def __init__(self):
        """Initialize AWS SES client"""
        session_kwargs = {
            'region_name': settings.AWS_REGION,
        }

        # Add credentials if provided (otherwise uses IAM role)
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
            session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

        self.ses_client = boto3.client('ses', **session_kwargs)

    def send_password_reset_email(
        self,
        to_email: str,
        reset_code: str,
        user_name: Optional[str] = None
    ) -> bool:
        """
        Send a password reset code to a user.

        Args:
            to_email: Recipient email address
            reset_code: Numeric one-time code
            user_name: Optional user's full name for personalization

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        greeting = f"Hi {user_name}," if user_name else "Hi there,"
        minutes = settings.OTP_EXPIRE_MINUTES

        text_body = f"""{greeting}

Your password reset code is: {reset_code}

This code will expire in {minutes} minutes.

If you didn't request this, please ignore this email.

---
This is an automated email from {settings.AWS_SES_FROM_NAME}.
"""
        html_body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #1F77FF;">Password Reset Request</h2>
  <p>{greeting}</p>
  <p>Your password reset code is:</p>
  <div style="background: #f5f5f5; padding: 20px; text-align: center; font-size: 32px; font-weight: bold; letter-spacing: 5px; margin: 20px 0;">
    {reset_code}
  </div>
  <p>This code will expire in <strong>{minutes} minutes</strong>.</p>
  <p>If you didn't request this, please ignore this email.</p>
  <hr style="margin: 30px 0; border: none; border-top: 1px solid #ddd;">
  <p style="color: #666; font-size: 12px;">This is an automated email from {settings.AWS_SES_FROM_NAME}.</p>
</div>
"""
        return self._send(to_email, "Password Reset Request", html_body, text_body)

    def send_password_changed_email(
        self,
        to_email: str,
        user_name: Optional[str] = None
    ) -> bool:
        """
        Confirm to a user that their password was just changed.

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        greeting = f"Hi {user_name}," if user_name else "Hi there,"

        text_body = f"""{greeting}

The password for your {settings.AWS_SES_FROM_NAME} account was just changed.

If you made this change, no further action is needed. If you didn't, reset your
password immediately and contact support.
"""
        html_body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #1F77FF;">Your password was changed</h2>
  <p>{greeting}</p>
  <p>The password for your {settings.AWS_SES_FROM_NAME} account was just changed.</p>
  <p>If you didn't make this change, reset your password immediately and contact support.</p>
</div>
"""
        return self._send(to_email, "Your password was changed", html_body, text_body)

    def _send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        try:
            response = self.ses_client.send_email(
                Source=f"{settings.AWS_SES_FROM_NAME} <{settings.AWS_SES_FROM_EMAIL}>",
                Destination={'ToAddresses': [to_email]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {
                        'Html': {'Data': html_body, 'Charset': 'UTF-8'},
                        'Text': {'Data': text_body, 'Charset': 'UTF-8'}
                    }
                }
            )

            message_id = response.get('MessageId')
            logger.info(f"Email '{subject}' sent to {to_email} (MessageId: {message_id})")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error(f"AWS SES ClientError: {error_code} - {error_message}")

            if error_code == 'MessageRejected':
                logger.error(f"Email rejected: {error_message}")
            elif error_code == 'MailFromDomainNotVerified':
                logger.error("Sender email not verified in SES")

            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False


# Singleton instance
email_service = EmailService()
