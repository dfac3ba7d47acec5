"""Public form submissions, one insert per form.

Each function validates, inserts, and reports the outcome as a
SubmissionResult. Nothing is raised to the page: backend errors are logged
and turned into a short message.
"""

from __future__ import annotations

import logging

from gcmn_data_access.errors import DataAccessError
from gcmn_data_access.rest import RestClient
from gcmn_shared import relations
from gcmn_shared.models import SubmissionResult

from gcmn_portal.forms import CardApplicationForm, ContactForm, DonationForm

logger = logging.getLogger(__name__)


def _failure(e: Exception, fallback: str) -> SubmissionResult:
    if isinstance(e, DataAccessError) and e.is_authorization_denied:
        return SubmissionResult(success=False, message=e.user_message)
    return SubmissionResult(success=False, message=fallback)


async def submit_card_application(
    rest: RestClient, form: CardApplicationForm, user_id: str | None = None
) -> SubmissionResult:
    """Insert an application; the backend assigns the card number."""
    values = {
        "user_id": user_id,
        "first_name": form.first_name.strip(),
        "last_name": form.last_name.strip(),
        "class": form.student_class,
        "roll_no": form.roll_no.strip(),
        "email": form.email.strip(),
        "phone": form.phone.strip(),
        "address_street": form.address_street.strip(),
        "address_city": form.address_city.strip(),
        "address_state": form.address_state.strip(),
        "address_zip": form.address_zip.strip(),
    }
    try:
        row = await rest.insert(
            relations.LIBRARY_CARD_APPLICATIONS, values, returning="id,card_number"
        )
    except Exception as e:
        logger.exception(f"Card application insert failed for {form.email}")
        return _failure(e, "Failed to submit application. Please try again.")

    row = row or {}
    logger.info(f"Card application submitted: {row.get('card_number')}")
    return SubmissionResult(
        success=True,
        message="Your library card application has been submitted successfully.",
        record_id=row.get("id"),
        card_number=row.get("card_number"),
    )


async def submit_contact_message(rest: RestClient, form: ContactForm) -> SubmissionResult:
    error = form.validate_form()
    if error:
        return SubmissionResult(success=False, message=error)
    try:
        await rest.insert(
            relations.CONTACT_MESSAGES,
            {
                "name": form.name.strip(),
                "email": form.email.strip(),
                "subject": form.subject.strip(),
                "message": form.message.strip(),
            },
        )
    except Exception as e:
        logger.exception(f"Contact message insert failed for {form.email}")
        return _failure(e, "Failed to send message. Please try again.")
    return SubmissionResult(success=True, message="Your message has been sent.")


async def submit_donation(rest: RestClient, form: DonationForm) -> SubmissionResult:
    error = form.validate_form()
    if error:
        return SubmissionResult(success=False, message=error)
    try:
        await rest.insert(
            relations.DONATIONS,
            {
                "amount": form.amount,
                "method": form.method,
                "name": form.name or None,
                "email": form.email or None,
                "message": form.message or None,
            },
        )
    except Exception as e:
        logger.exception("Donation insert failed")
        return _failure(e, "Failed to record donation. Please try again.")
    return SubmissionResult(success=True, message="Thank you for your donation!")
