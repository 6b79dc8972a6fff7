"""
Farm invitations

pending -> accepted | declined | cancelled | expired. Every transition out of
pending is a conditional UPDATE on the status column, so an invitation is
consumed at most once even when two requests race for it.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from farmhub.core.config import Settings
from farmhub.core.errors import (
    Conflict,
    FarmInactive,
    InsufficientPermissions,
    InvalidStateTransition,
    NotFound,
)
from farmhub.core.principal import FarmContext, Principal
from farmhub.core.security import generate_opaque_token
from farmhub.models import FarmInvitation, FarmMembership, FarmRole, InvitationStatus, User
from farmhub.schemas.invitation import InvitationCreate
from farmhub.utils.date import expires_after, is_expired, to_iso, utc_now

logger = logging.getLogger(__name__)


def serialize_invitation(invitation: FarmInvitation, include_token: bool = False) -> Dict[str, Any]:
    data = {
        "id": str(invitation.id),
        "farmId": str(invitation.farm_id),
        "farmName": invitation.farm.name if invitation.farm else None,
        "inviteeEmail": invitation.invitee_email,
        "inviteeName": invitation.invitee_name,
        "role": FarmRole(invitation.role).value,
        "status": InvitationStatus(invitation.status).value,
        "message": invitation.message,
        "invitedBy": invitation.invited_by.full_name if invitation.invited_by else None,
        "expiresAt": to_iso(invitation.expires_at),
        "respondedAt": to_iso(invitation.responded_at),
        "createdAt": to_iso(invitation.created_at),
    }
    if include_token:
        data["token"] = invitation.token
    return data


class InvitationService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    # ========================================================================
    # STATE HANDLING
    # ========================================================================

    def _transition(self, invitation: FarmInvitation, status: InvitationStatus, **values) -> None:
        """Move a pending invitation to status, or fail if someone else already did"""
        updated = (
            self.db.query(FarmInvitation)
            .filter(
                FarmInvitation.id == invitation.id,
                FarmInvitation.status == InvitationStatus.PENDING,
            )
            .update(
                {FarmInvitation.status: status, FarmInvitation.responded_at: utc_now(), **values},
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            raise InvalidStateTransition("Invitation is no longer pending")

    def _expire_if_due(self, invitation: FarmInvitation) -> bool:
        """Lazily mark an overdue pending invitation as expired"""
        if invitation.status == InvitationStatus.PENDING and is_expired(invitation.expires_at):
            self._transition(invitation, InvitationStatus.EXPIRED)
            self.db.commit()
            self.db.refresh(invitation)
            return True
        return False

    def _load_by_token(self, token: str) -> FarmInvitation:
        invitation = (
            self.db.query(FarmInvitation)
            .options(joinedload(FarmInvitation.farm), joinedload(FarmInvitation.invited_by))
            .filter(FarmInvitation.token == token)
            .first()
        )
        if not invitation:
            raise NotFound("Invitation not found")
        return invitation

    def _pending_by_token(self, token: str) -> FarmInvitation:
        invitation = self._load_by_token(token)
        if self._expire_if_due(invitation):
            raise InvalidStateTransition("Invitation has expired")
        if invitation.status != InvitationStatus.PENDING:
            raise InvalidStateTransition(
                f"Invitation has already been {InvitationStatus(invitation.status).value}"
            )
        return invitation

    # ========================================================================
    # INVITEE SIDE
    # ========================================================================

    def preview(self, token: str) -> FarmInvitation:
        return self._pending_by_token(token)

    def accept(self, token: str, principal: Principal) -> FarmMembership:
        """Create (or reactivate) the membership together with the status change"""
        invitation = self._pending_by_token(token)

        if principal.email.lower() != invitation.invitee_email.lower():
            raise InsufficientPermissions(
                "Email does not match invitation",
                requirement="invitee_email",
            )
        if invitation.farm is None or not invitation.farm.is_active:
            raise FarmInactive()

        membership = (
            self.db.query(FarmMembership)
            .filter(
                FarmMembership.farm_id == invitation.farm_id,
                FarmMembership.user_id == principal.id,
            )
            .first()
        )
        if membership is not None and membership.is_active:
            raise Conflict("User is already a member of this farm")

        now = utc_now()
        if membership is None:
            membership = FarmMembership(farm_id=invitation.farm_id, user_id=principal.id)
            self.db.add(membership)
        membership.role = invitation.role
        membership.is_active = True
        membership.joined_at = now
        membership.invited_by_id = invitation.invited_by_id

        self._transition(invitation, InvitationStatus.ACCEPTED, accepted_by_id=principal.id)
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"Invitation {invitation.id} accepted by {principal.email}")
        return membership

    def decline(self, token: str) -> FarmInvitation:
        invitation = self._pending_by_token(token)
        self._transition(invitation, InvitationStatus.DECLINED)
        self.db.commit()
        self.db.refresh(invitation)
        return invitation

    def pending_for_user(self, principal: Principal) -> List[FarmInvitation]:
        return (
            self.db.query(FarmInvitation)
            .options(joinedload(FarmInvitation.farm), joinedload(FarmInvitation.invited_by))
            .filter(
                FarmInvitation.invitee_email == principal.email.lower(),
                FarmInvitation.status == InvitationStatus.PENDING,
                FarmInvitation.expires_at > utc_now(),
            )
            .order_by(FarmInvitation.created_at.desc())
            .all()
        )

    # ========================================================================
    # FARM SIDE
    # ========================================================================

    def create(self, context: FarmContext, principal: Principal, payload: InvitationCreate) -> FarmInvitation:
        if payload.role == FarmRole.OWNER and context.farm_role != FarmRole.OWNER:
            raise InsufficientPermissions(
                "Only owners can invite owners",
                requirement="farm_role",
                required=[FarmRole.OWNER.value],
                current=context.farm_role.value,
            )

        email = payload.email.strip().lower()
        existing_user = self.db.query(User).filter(User.email == email).first()
        if existing_user is not None:
            is_member = (
                self.db.query(FarmMembership)
                .filter(
                    FarmMembership.farm_id == context.farm_id,
                    FarmMembership.user_id == existing_user.id,
                    FarmMembership.is_active.is_(True),
                )
                .first()
            )
            if is_member:
                raise Conflict("User is already a member of this farm")

        for pending in self._pending_for_email(context.farm_id, email):
            if not self._expire_if_due(pending):
                raise Conflict("Invitation already sent to this email")

        invitation = FarmInvitation(
            farm_id=context.farm_id,
            invitee_email=email,
            invitee_name=payload.name,
            role=payload.role,
            status=InvitationStatus.PENDING,
            token=generate_opaque_token(),
            message=payload.message,
            expires_at=expires_after(days=self.settings.INVITATION_EXPIRE_DAYS),
            invited_by_id=principal.id,
        )
        self.db.add(invitation)
        self.db.commit()
        self.db.refresh(invitation)
        logger.info(f"Invitation to {email} for farm {context.farm_id} created by {principal.email}")
        return invitation

    def _pending_for_email(self, farm_id, email: str) -> List[FarmInvitation]:
        return (
            self.db.query(FarmInvitation)
            .filter(
                FarmInvitation.farm_id == farm_id,
                FarmInvitation.invitee_email == email,
                FarmInvitation.status == InvitationStatus.PENDING,
            )
            .all()
        )

    def list_for_farm(self, farm_id, status: Optional[InvitationStatus] = None) -> List[FarmInvitation]:
        invitations = (
            self.db.query(FarmInvitation)
            .options(joinedload(FarmInvitation.farm), joinedload(FarmInvitation.invited_by))
            .filter(FarmInvitation.farm_id == farm_id)
            .order_by(FarmInvitation.created_at.desc())
            .all()
        )
        for invitation in invitations:
            self._expire_if_due(invitation)
        if status is not None:
            invitations = [i for i in invitations if i.status == status]
        return invitations

    def cancel(self, context: FarmContext, invitation_id) -> FarmInvitation:
        invitation = (
            self.db.query(FarmInvitation)
            .filter(FarmInvitation.id == invitation_id, FarmInvitation.farm_id == context.farm_id)
            .first()
        )
        if not invitation:
            raise NotFound("Invitation not found")
        if self._expire_if_due(invitation):
            raise InvalidStateTransition("Invitation has expired")
        if invitation.status != InvitationStatus.PENDING:
            raise InvalidStateTransition(
                f"Invitation has already been {InvitationStatus(invitation.status).value}"
            )

        self._transition(invitation, InvitationStatus.CANCELLED)
        self.db.commit()
        self.db.refresh(invitation)
        return invitation
