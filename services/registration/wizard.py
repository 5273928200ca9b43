"""
services/registration/wizard.py
Step logic for the provider registration wizard.

A draft is a plain dict kept in Redis between requests:

    {
        "draft_id": "...",
        "mode": "create" | "edit",
        "user_id": None | "<uuid>",        # set for signed-in providers
        "profile_version": None | 3,       # edit mode: version the draft was built from
        "step": "business_info",           # current step, or "submit" once all are done
        "completed_steps": ["account"],
        "data": {"account": {...}, "business_info": {...}, ...},
    }

Moving forward validates only the step being saved; moving back never validates.
"""

import uuid
from typing import Optional

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from shared.exceptions import ConflictError, ValidationError
from shared.models.models import ProviderProfile
from shared.schemas.schemas import (
    AccountStep,
    BusinessInfoStep,
    DescriptionStep,
    ProfessionalDetailsStep,
)
from shared.utils.security import check_password_policy, hash_password

MODE_CREATE = "create"
MODE_EDIT = "edit"
SUBMIT = "submit"

STEP_SCHEMAS: dict[str, type[BaseModel]] = {
    "account": AccountStep,
    "business_info": BusinessInfoStep,
    "professional_details": ProfessionalDetailsStep,
    "description": DescriptionStep,
}
ALL_STEPS = list(STEP_SCHEMAS)

# Profile columns filled by each profile step
PROFILE_STEPS = ["business_info", "professional_details", "description"]


def steps_for(draft: dict) -> list[str]:
    """Signed-in providers already have an account, so they skip that step."""
    if draft["user_id"]:
        return PROFILE_STEPS
    return ALL_STEPS


def new_draft(
    user_id: Optional[str] = None,
    profile: Optional[ProviderProfile] = None,
) -> dict:
    draft = {
        "draft_id": str(uuid.uuid4()),
        "mode": MODE_EDIT if profile else MODE_CREATE,
        "user_id": user_id,
        "profile_version": profile.version if profile else None,
        "step": "",
        "completed_steps": [],
        "data": {},
    }
    steps = steps_for(draft)
    draft["step"] = steps[0]

    if profile:
        # Pre-fill from the saved profile; steps that already validate count as done
        for step in PROFILE_STEPS:
            schema = STEP_SCHEMAS[step]
            values = {name: getattr(profile, name) for name in schema.model_fields}
            draft["data"][step] = _dump(values)
            try:
                schema.model_validate(values)
            except SchemaValidationError:
                continue
            draft["completed_steps"].append(step)
    return draft


def _dump(values: dict) -> dict:
    return {
        key: value.value if hasattr(value, "value") else value
        for key, value in values.items()
    }


def _format_errors(exc: SchemaValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(messages)


def save_step(draft: dict, step: str, payload: dict) -> dict:
    """
    Validate `payload` against `step` and store it, then move to the next
    step. Only the current step or one already completed may be saved.
    Nothing is changed when validation fails.
    """
    steps = steps_for(draft)
    if step not in steps:
        raise ValidationError(f"Unknown step '{step}'. Expected one of: {', '.join(steps)}")

    current_index = len(steps) if draft["step"] == SUBMIT else steps.index(draft["step"])
    if steps.index(step) > current_index:
        raise ConflictError(f"Complete the '{draft['step']}' step first")

    try:
        validated = STEP_SCHEMAS[step].model_validate(payload)
    except SchemaValidationError as exc:
        raise ValidationError(_format_errors(exc))

    if step == "account":
        check_password_policy(validated.password)
        values = validated.model_dump(mode="json", exclude={"password", "confirm_password"})
        # Only the hash is kept in the draft
        values["password_hash"] = hash_password(validated.password)
    else:
        values = validated.model_dump(mode="json")

    draft["data"][step] = values
    if step not in draft["completed_steps"]:
        draft["completed_steps"].append(step)

    next_index = steps.index(step) + 1
    draft["step"] = steps[next_index] if next_index < len(steps) else SUBMIT
    return draft


def go_back(draft: dict) -> dict:
    """Return to the previous step. Entered data is kept and not re-validated."""
    steps = steps_for(draft)
    if draft["step"] == SUBMIT:
        draft["step"] = steps[-1]
    else:
        index = steps.index(draft["step"])
        draft["step"] = steps[max(index - 1, 0)]
    return draft


def missing_steps(draft: dict) -> list[str]:
    return [step for step in steps_for(draft) if step not in draft["completed_steps"]]


def profile_fields(draft: dict) -> dict:
    """Merge the profile steps into ProviderProfile column values."""
    fields = {}
    for step in PROFILE_STEPS:
        fields.update(draft["data"].get(step, {}))
    return fields


def public_view(draft: dict) -> dict:
    """Draft as returned to clients; the password hash never leaves the server."""
    data = {step: dict(values) for step, values in draft["data"].items()}
    if "account" in data:
        data["account"].pop("password_hash", None)
    return {
        "draft_id": draft["draft_id"],
        "mode": draft["mode"],
        "step": draft["step"],
        "steps": steps_for(draft),
        "completed_steps": draft["completed_steps"],
        "data": data,
    }
