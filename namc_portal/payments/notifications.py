import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def _send(subject, message, recipients):
    recipients = [email for email in recipients if email]
    if not recipients:
        return False
    try:
        send_mail(
            subject=f"[{settings.SITE_NAME}] {subject}",
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=recipients,
            fail_silently=False,
        )
        return True
    except Exception as e:
        logger.error(f"Failed to send '{subject}' notification to {recipients}: {str(e)}")
        return False


def notify_payment_released(payment):
    project = payment.escrow.project
    labels = {
        'MILESTONE': 'Milestone payment',
        'TASK_COMPLETION': 'Task payment',
        'RETENTION_RELEASE': 'Retention release',
        'REFUND': 'Refund',
    }
    label = labels.get(payment.payment_type, 'Payment')
    message = (
        f"{label} of ${payment.amount} has been released for project \"{project.title}\".\n"
        f"Transaction reference: {payment.transaction_id}"
    )
    return _send(f"{label} released", message, [payment.recipient.email])


def notify_dispute_opened(dispute):
    project = dispute.escrow.project
    message = (
        f"A payment dispute for ${dispute.dispute_amount} was opened on project \"{project.title}\" "
        f"by {dispute.submitted_by.get_full_name() or dispute.submitted_by.email}.\n\n"
        f"Reason: {dispute.dispute_reason}\n\n"
        f"Please respond before {dispute.response_deadline:%B %d, %Y}. "
        f"Payments from this escrow are on hold until the dispute is resolved."
    )
    return _send("Payment dispute opened", message, [dispute.respondent.email])


def notify_mediation_requested(dispute):
    project = dispute.escrow.project
    when = f"{dispute.mediation_date:%B %d, %Y}" if dispute.mediation_date else "a date to be confirmed"
    mediator = "to be assigned"
    if dispute.mediator:
        mediator = dispute.mediator.get_full_name() or dispute.mediator.email
    message = (
        f"Mediation has been requested for the payment dispute on project \"{project.title}\".\n"
        f"Mediator: {mediator}\n"
        f"Scheduled for: {when}"
    )
    return _send(
        "Mediation requested",
        message,
        [dispute.submitted_by.email, dispute.respondent.email],
    )


def notify_dispute_resolved(dispute):
    project = dispute.escrow.project
    amount = dispute.resolution_amount or 0
    message = (
        f"The payment dispute on project \"{project.title}\" has been resolved.\n\n"
        f"Resolution: {dispute.resolution}\n"
        f"Amount awarded: ${amount}"
    )
    return _send(
        "Payment dispute resolved",
        message,
        [dispute.submitted_by.email, dispute.respondent.email],
    )
