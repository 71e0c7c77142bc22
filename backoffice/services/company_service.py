"""Company Service - tenants and their memberships."""
from typing import Optional, List, Tuple
from datetime import datetime, timezone
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from backoffice.core.errors import CompanyNotFound, Conflict, Forbidden, NotFound, PersistenceError, ValidationError
from backoffice.core.security import generate_temporary_password, get_password_hash
from backoffice.database import with_timeout
from backoffice.models.company import Company, CompanyMember, CompanyRole
from backoffice.models.user import User
from backoffice.schemas.company import CompanyCreate, MemberResponse


logger = logging.getLogger(__name__)


def to_member_response(member: CompanyMember) -> MemberResponse:
    """Membership row (with user and inviter loaded) -> response."""
    return MemberResponse(
        id=member.id,
        company_id=member.company_id,
        user_id=member.user_id,
        email=member.user.email,
        name=member.user.name,
        phone=member.user.phone,
        role=CompanyRole(member.role),
        is_active=member.is_active,
        invited_by=member.invited_by,
        invited_by_name=member.inviter.name if member.inviter else None,
        joined_at=member.joined_at,
    )


class CompanyService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _flush(self, action: str, company_id: Optional[uuid.UUID] = None) -> None:
        try:
            await with_timeout(self.db.flush())
        except IntegrityError as exc:
            await self.db.rollback()
            logger.warning(f"{action}_conflict company_id={company_id}")
            raise Conflict(f"Could not {action.replace('_', ' ')}: record already exists") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(f"{action}_failed company_id={company_id}")
            raise PersistenceError(f"Could not {action.replace('_', ' ')}") from exc

    async def _get_membership(self, company_id: uuid.UUID, user_id: uuid.UUID) -> Optional[CompanyMember]:
        return await with_timeout(
            self.db.scalar(
                select(CompanyMember)
                .options(joinedload(CompanyMember.user), joinedload(CompanyMember.inviter))
                .where(
                    CompanyMember.company_id == company_id,
                    CompanyMember.user_id == user_id,
                )
                .execution_options(populate_existing=True)
            )
        )

    # ==================== COMPANIES ====================

    async def create_company(self, user_id: uuid.UUID, data: CompanyCreate) -> Company:
        """Create a company; the creator becomes its owner."""
        existing = await with_timeout(
            self.db.scalar(select(Company.id).where(Company.tax_id == data.tax_id))
        )
        if existing is not None:
            raise Conflict("A company with this tax ID already exists", details={"tax_id": data.tax_id})

        company = Company(
            name=data.name,
            tax_id=data.tax_id,
            address=data.address,
            phone=data.phone,
            email=data.email,
            website=data.website,
        )
        company.members.append(
            CompanyMember(user_id=user_id, role=CompanyRole.OWNER.value, is_active=True)
        )
        self.db.add(company)
        await self._flush("create_company")

        logger.info(f"company_created company_id={company.id} owner_id={user_id}")
        return company

    async def get_company(self, company_id: uuid.UUID) -> Company:
        company = await with_timeout(
            self.db.scalar(
                select(Company).where(Company.id == company_id, Company.is_active == True)  # noqa: E712
            )
        )
        if company is None:
            raise CompanyNotFound()
        return company

    # ==================== MEMBERS ====================

    async def list_members(self, company_id: uuid.UUID) -> List[MemberResponse]:
        """Active members with user details and inviter name, newest first."""
        result = await with_timeout(
            self.db.execute(
                select(CompanyMember)
                .options(joinedload(CompanyMember.user), joinedload(CompanyMember.inviter))
                .where(
                    CompanyMember.company_id == company_id,
                    CompanyMember.is_active == True,  # noqa: E712
                )
                .order_by(CompanyMember.joined_at.desc(), CompanyMember.id.desc())
            )
        )
        return [to_member_response(m) for m in result.scalars().unique().all()]

    async def invite(
        self,
        company_id: uuid.UUID,
        invited_by: uuid.UUID,
        email: str,
        role: CompanyRole,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Tuple[MemberResponse, bool]:
        """
        Add a user to the company, creating the user when the email is unknown.

        Re-inviting a removed member reactivates the membership with the new role.

        Returns:
            (membership, is_new_user)
        """
        email = email.lower()
        user = await with_timeout(self.db.scalar(select(User).where(User.email == email)))
        is_new_user = user is None
        membership = None

        if is_new_user:
            if not name:
                raise ValidationError("Name is required for new users")
            user = User(
                email=email,
                name=name,
                phone=phone,
                password_hash=get_password_hash(password or generate_temporary_password()),
            )
            self.db.add(user)
            await self._flush("create_user", company_id)
        else:
            membership = await self._get_membership(company_id, user.id)
            if membership is not None and membership.is_active:
                raise Conflict("User is already a member of this company")

        now = datetime.now(timezone.utc)
        if membership is None:
            membership = CompanyMember(
                company_id=company_id,
                user_id=user.id,
                role=CompanyRole(role).value,
                invited_by=invited_by,
                is_active=True,
                joined_at=now,
            )
            self.db.add(membership)
        else:
            membership.role = CompanyRole(role).value
            membership.invited_by = invited_by
            membership.is_active = True
            membership.joined_at = now
        await self._flush("invite_member", company_id)

        logger.info(
            f"member_invited company_id={company_id} user_id={user.id} role={CompanyRole(role).value} "
            f"new_user={is_new_user}"
        )
        return to_member_response(await self._get_membership(company_id, user.id)), is_new_user

    async def update_member_role(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        role: CompanyRole,
        acting_user_id: uuid.UUID,
    ) -> MemberResponse:
        if user_id == acting_user_id:
            raise ValidationError("You cannot change your own role")

        membership = await self._get_membership(company_id, user_id)
        if membership is None or not membership.is_active:
            raise NotFound("Member", message="User is not a member of this company")
        if membership.role == CompanyRole.OWNER.value:
            raise Forbidden("Cannot change the owner role")

        previous = membership.role
        membership.role = CompanyRole(role).value
        await self._flush("update_member_role", company_id)

        logger.info(
            f"member_role_changed company_id={company_id} user_id={user_id} "
            f"from={previous} to={membership.role} by={acting_user_id}"
        )
        return to_member_response(await self._get_membership(company_id, user_id))

    async def remove_member(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        acting_user_id: uuid.UUID,
    ) -> None:
        """Soft-remove a member (membership row is kept, inactive)."""
        if user_id == acting_user_id:
            raise ValidationError("You cannot remove yourself from the company")

        membership = await self._get_membership(company_id, user_id)
        if membership is None or not membership.is_active:
            raise NotFound("Member", message="User is not a member of this company")
        if membership.role == CompanyRole.OWNER.value:
            raise Forbidden("Cannot remove the company owner")

        membership.is_active = False
        await self._flush("remove_member", company_id)

        logger.info(f"member_removed company_id={company_id} user_id={user_id} by={acting_user_id}")
