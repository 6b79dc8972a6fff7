"""
Farm invitation endpoints

Farm-side routes (/farm...) and the caller's inbox (/user/pending) are
declared before the token routes so the literal paths win.
"""
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import get_current_principal, get_optional_principal, require_farm_role
from farmhub.core.permissions import FARM_ADMINS
from farmhub.core.principal import FarmContext, Principal
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.models import FarmRole, InvitationStatus
from farmhub.schemas.invitation import InvitationCreate, InvitationIdParams, InvitationTokenParams
from farmhub.services.invitation_service import InvitationService, serialize_invitation
from farmhub.utils.date import to_iso
from farmhub.utils.responses import success_response

router = APIRouter(prefix="/invitations", tags=["Invitations"])


class FarmInvitationQuery(BaseModel):
    status: Optional[InvitationStatus] = None


def get_invitation_service(request: Request, db: Session = Depends(get_db)) -> InvitationService:
    return InvitationService(db, request.app.state.settings)


# -------------------------
# CALLER'S INBOX
# -------------------------
@router.get("/user/pending")
def pending_invitations(
    principal: Principal = Depends(get_current_principal),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    invitations = service.pending_for_user(principal)
    return success_response(
        [serialize_invitation(i, include_token=True) for i in invitations],
        "Pending invitations retrieved successfully",
    )


# -------------------------
# FARM SIDE (OWNER / MANAGER)
# -------------------------
@router.post("/farm", status_code=status.HTTP_201_CREATED)
def create_invitation(
    request: Request,
    background_tasks: BackgroundTasks,
    context: FarmContext = Depends(require_farm_role(*FARM_ADMINS)),
    principal: Principal = Depends(get_current_principal),
    validated: ValidatedRequest = Depends(validate(body=InvitationCreate)),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    invitation = service.create(context, principal, validated.body)
    inviter = " ".join(filter(None, [principal.first_name, principal.last_name])) or principal.email
    background_tasks.add_task(
        request.app.state.email.send_invitation_email,
        invitation.invitee_email,
        invitation.token,
        context.farm_name,
        FarmRole(invitation.role).value,
        inviter,
    )
    return success_response(
        serialize_invitation(invitation, include_token=True), "Invitation sent successfully"
    )


@router.get("/farm")
def farm_invitations(
    context: FarmContext = Depends(require_farm_role(*FARM_ADMINS)),
    validated: ValidatedRequest = Depends(validate(query=FarmInvitationQuery)),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    invitations = service.list_for_farm(context.farm_id, validated.query.status)
    return success_response(
        [serialize_invitation(i) for i in invitations], "Invitations retrieved successfully"
    )


@router.delete("/farm/{invitation_id}")
def cancel_invitation(
    context: FarmContext = Depends(require_farm_role(*FARM_ADMINS)),
    validated: ValidatedRequest = Depends(validate(params=InvitationIdParams)),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    invitation = service.cancel(context, validated.params.invitation_id)
    return success_response(serialize_invitation(invitation), "Invitation cancelled successfully")


# -------------------------
# TOKEN ROUTES
# -------------------------
@router.get("/{token}")
def preview_invitation(
    principal: Optional[Principal] = Depends(get_optional_principal),
    validated: ValidatedRequest = Depends(validate(params=InvitationTokenParams)),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    """Public preview; signed-in callers also learn whether the invitation is addressed to them"""
    invitation = service.preview(validated.params.token)
    data = serialize_invitation(invitation)
    if principal is not None:
        data["isForCurrentUser"] = principal.email.lower() == invitation.invitee_email.lower()
    return success_response(data, "Invitation retrieved successfully")


@router.post("/{token}/accept")
def accept_invitation(
    principal: Principal = Depends(get_current_principal),
    validated: ValidatedRequest = Depends(validate(params=InvitationTokenParams)),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    membership = service.accept(validated.params.token, principal)
    return success_response(
        {
            "farmId": str(membership.farm_id),
            "role": FarmRole(membership.role).value,
            "joinedAt": to_iso(membership.joined_at),
        },
        "Invitation accepted successfully",
    )


@router.post("/{token}/decline")
def decline_invitation(
    validated: ValidatedRequest = Depends(validate(params=InvitationTokenParams)),
    service: InvitationService = Depends(get_invitation_service),
) -> Any:
    invitation = service.decline(validated.params.token)
    return success_response(serialize_invitation(invitation), "Invitation declined")
