"""User aggregate — the minimal account record the lifecycle authorizes against.

Only the role matters here: buyers own orders and their returns, sellers own
the items they sold, and admins (including co-admins) may act on anything.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError


class Role(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


@aftersales.aggregate
class User:
    name: String(max_length=150, required=True)
    email: String(max_length=254, required=True)
    role: String(choices=Role, default=Role.BUYER.value)
    is_co_admin: Boolean(default=False)
    created_at: DateTime()

    @classmethod
    def register(cls, name, email, role=Role.BUYER.value, is_co_admin=False, user_id=None):
        kwargs = {"id": user_id} if user_id else {}
        return cls(
            name=name,
            email=email,
            role=role,
            is_co_admin=is_co_admin,
            created_at=datetime.now(UTC),
            **kwargs,
        )

    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value or bool(self.is_co_admin)


@aftersales.repository(part_of=User)
class UserRepository:
    def admins(self) -> list[User]:
        users = self._dao.query.all().items
        return [u for u in users if u.is_admin()]


@aftersales.command(part_of=User)
class RegisterUser:
    user_id = Identifier()
    name = String(required=True, max_length=150)
    email = String(required=True, max_length=254)
    role = String(choices=Role, default=Role.BUYER.value)
    is_co_admin = Boolean(default=False)


@aftersales.command_handler(part_of=User)
class RegisterUserHandler:
    @handle(RegisterUser)
    def register_user(self, command):
        user = User.register(
            name=command.name,
            email=command.email,
            role=command.role,
            is_co_admin=command.is_co_admin,
            user_id=command.user_id,
        )
        current_domain.repository_for(User).add(user)
        return str(user.id)


def load_actor(actor_id) -> User:
    """Resolve the acting user. Unknown actors are denied, never treated as anonymous."""
    if not actor_id:
        raise AccessDeniedError("Authentication required")
    try:
        return current_domain.repository_for(User).get(str(actor_id))
    except ObjectNotFoundError:
        raise AccessDeniedError("Unknown user") from None
