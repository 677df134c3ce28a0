from app.models.auth.user import UserRole
from app.services.auth.auth_service import AuthService, is_admin


async def test_user_lookup_by_email(db, admin):
    service = AuthService(db)

    found = await service.get_user_by_email("admin@codearena.dev")

    assert found["_id"] == admin["_id"]
    assert is_admin(found)
    assert await service.get_user_by_email("nobody@codearena.dev") is None


async def test_regular_users_are_not_admins(db, make_user):
    user = await make_user("alice")

    assert user["role"] == UserRole.USER.value
    assert not is_admin(user)
    assert not is_admin(None)
