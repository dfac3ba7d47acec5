"""Three-step library card application wizard.

Step 1 collects identity and class, step 2 contact details, step 3 the
address. `next()` only advances when the current step's required fields are
filled; `back()` never validates. Submission runs the insert from
submissions.py and resets the wizard on success.
"""

from __future__ import annotations

from collections.abc import Callable

from gcmn_data_access.rest import RestClient
from gcmn_shared.models import Notice, SubmissionResult

from gcmn_portal.forms import CARD_CLASSES, CardApplicationForm, is_valid_email
from gcmn_portal.submissions import submit_card_application

FIRST_STEP = 1
LAST_STEP = 3

STEP_FIELDS: dict[int, tuple[str, ...]] = {
    1: ("first_name", "last_name", "student_class", "roll_no"),
    2: ("email", "phone"),
    3: ("address_street", "address_city", "address_state", "address_zip"),
}

MISSING_NOTICE = Notice(
    title="Missing Information",
    description="Please fill in all required fields.",
    variant="destructive",
)
INVALID_EMAIL_NOTICE = Notice(
    title="Invalid Email",
    description="Please enter a valid email address.",
    variant="destructive",
)


class CardApplicationWizard:
    def __init__(self, notifier: Callable[[Notice], None] | None = None) -> None:
        self.form = CardApplicationForm()
        self.step = FIRST_STEP
        self.submitting = False
        self._notifier = notifier

    def _notify(self, notice: Notice) -> None:
        if self._notifier is not None:
            self._notifier(notice)

    def update(self, **fields: str) -> None:
        self.form = self.form.model_copy(update=fields)

    def check_step(self, step: int) -> Notice | None:
        """Return the notice blocking `step`, or None when it is complete."""
        for name in STEP_FIELDS[step]:
            if not str(getattr(self.form, name)).strip():
                return MISSING_NOTICE
        if step == 1 and self.form.student_class not in CARD_CLASSES:
            return MISSING_NOTICE
        if step == 2 and not is_valid_email(self.form.email.strip()):
            return INVALID_EMAIL_NOTICE
        return None

    def next(self) -> bool:
        notice = self.check_step(self.step)
        if notice is not None:
            self._notify(notice)
            return False
        if self.step < LAST_STEP:
            self.step += 1
        return True

    def back(self) -> None:
        if self.step > FIRST_STEP:
            self.step -= 1

    def reset(self) -> None:
        self.form = CardApplicationForm()
        self.step = FIRST_STEP

    async def submit(self, rest: RestClient, user_id: str | None = None) -> SubmissionResult:
        for step in range(FIRST_STEP, LAST_STEP + 1):
            notice = self.check_step(step)
            if notice is not None:
                self.step = step
                self._notify(notice)
                return SubmissionResult(success=False, message=notice.description)

        self.submitting = True
        try:
            result = await submit_card_application(rest, self.form, user_id)
        finally:
            self.submitting = False

        if result.success:
            self._notify(Notice(title="Application Submitted", description=result.message))
            self.reset()
        else:
            self._notify(Notice(title="Error", description=result.message, variant="destructive"))
        return result
