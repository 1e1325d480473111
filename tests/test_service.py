"""Tests for catalog, role and admin assignment services."""

import pytest
from sqlalchemy import select

from app.core.errors import CircularAssignmentError, ConflictError, InvalidReferenceError, NotFoundError
from app.features.admins import service as admin_service
from app.features.admins.models import Admin, AdminStatus, AdminType
from app.features.admins.schemas import AdminUpdate
from app.features.permissions import service as permission_service
from app.features.permissions.models import Permission, PermissionType, role_permissions
from app.features.permissions.provider import SQLAlchemyPermissionProvider
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import PermissionCreate, PermissionUpdate, RoleCreate, RoleUpdate
from app.features.roles import service as role_service


class TestPermissionService:
    """Tests for catalog operations."""

    @pytest.mark.asyncio
    async def test_create_permission(self, db, permission_cache, seeded):
        created = await permission_service.create_permission(db, permission_cache, PermissionCreate(
            key="user.export", name="Export admins", type=PermissionType.ACTION,
            parent_id=seeded.permissions["user"], method="post",
        ))
        assert created.id
        assert created.method == "POST"
        assert created.created_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_key_conflicts(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await permission_service.create_permission(db, permission_cache, PermissionCreate(
                key="user.list", name="Again", type=PermissionType.API,
            ))

    @pytest.mark.asyncio
    async def test_missing_parent_is_invalid(self, db, permission_cache, seeded):
        with pytest.raises(InvalidReferenceError):
            await permission_service.create_permission(db, permission_cache, PermissionCreate(
                key="orphan", name="Orphan", type=PermissionType.PAGE, parent_id="01HNOSUCHPARENT0000000000",
            ))

    @pytest.mark.asyncio
    async def test_update_rejects_descendant_parent(self, db, permission_cache, seeded):
        with pytest.raises(CircularAssignmentError):
            await permission_service.update_permission(
                db, permission_cache, seeded.permissions["system"],
                PermissionUpdate(parent_id=seeded.permissions["user.list"]),
            )

    @pytest.mark.asyncio
    async def test_update_rejects_self_parent(self, db, permission_cache, seeded):
        with pytest.raises(CircularAssignmentError):
            await permission_service.update_permission(
                db, permission_cache, seeded.permissions["user"],
                PermissionUpdate(parent_id=seeded.permissions["user"]),
            )

    @pytest.mark.asyncio
    async def test_update_moves_node(self, db, permission_cache, seeded):
        updated = await permission_service.update_permission(
            db, permission_cache, seeded.permissions["user.assign_role"],
            PermissionUpdate(parent_id=seeded.permissions["role"], name="Assign"),
        )
        assert updated.parent_id == seeded.permissions["role"]
        assert updated.name == "Assign"

    @pytest.mark.asyncio
    async def test_update_missing_permission(self, db, permission_cache, seeded):
        with pytest.raises(NotFoundError):
            await permission_service.update_permission(
                db, permission_cache, "01HNOSUCHPERMISSION000000", PermissionUpdate(name="x")
            )

    @pytest.mark.asyncio
    async def test_delete_blocked_by_children(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await permission_service.delete_permission(db, permission_cache, seeded.permissions["user"])

    @pytest.mark.asyncio
    async def test_delete_blocked_by_role_usage(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await permission_service.delete_permission(db, permission_cache, seeded.permissions["user.list"])

    @pytest.mark.asyncio
    async def test_delete_unused_leaf(self, db, permission_cache, seeded):
        await permission_service.delete_permission(db, permission_cache, seeded.permissions["user.assign_role"])
        result = await db.execute(select(Permission).where(Permission.key == "user.assign_role"))
        assert result.scalar_one_or_none() is None

    @pytest.mark.asyncio
    async def test_batch_update_status(self, db, permission_cache, seeded):
        ids = [seeded.permissions["role.create"], seeded.permissions["role.update"]]
        assert await permission_service.batch_update_permission_status(db, permission_cache, ids, False) == 2
        listing = await permission_service.list_permissions(db, enabled=False)
        assert {p.key for p in listing.items} == {"role.create", "role.update"}

    @pytest.mark.asyncio
    async def test_list_filters_and_paginates(self, db, seeded):
        listing = await permission_service.list_permissions(db, type=PermissionType.PAGE)
        assert listing.total == 3

        listing = await permission_service.list_permissions(db, keyword="role.", page=2, page_size=3)
        assert listing.total == 4
        assert listing.pages == 2
        assert len(listing.items) == 1

        listing = await permission_service.list_permissions(db, parent_id=seeded.permissions["user"])
        assert {p.key for p in listing.items} == {"user.list", "user.assign_role"}

    @pytest.mark.asyncio
    async def test_descendants(self, db, seeded):
        descendants = await permission_service.get_permission_descendants(db, seeded.permissions["system"])
        assert len(descendants) == 14

    @pytest.mark.asyncio
    async def test_get_by_keys_skips_unknown(self, db, seeded):
        found = await permission_service.get_permissions_by_keys(db, ["user.list", "nope"])
        assert [p.key for p in found] == ["user.list"]


class TestRoleService:
    """Tests for role operations."""

    @pytest.mark.asyncio
    async def test_create_role_conflicts(self, db, seeded):
        with pytest.raises(ConflictError):
            await role_service.create_role(db, RoleCreate(name="Something", code="auditor"))
        with pytest.raises(ConflictError):
            await role_service.create_role(db, RoleCreate(name="Auditor", code="other"))

    @pytest.mark.asyncio
    async def test_delete_assigned_role_conflicts(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await role_service.delete_role(db, permission_cache, seeded.roles["auditor"])

    @pytest.mark.asyncio
    async def test_delete_unassigned_role_removes_links(self, db, permission_cache, seeded):
        role = await role_service.create_role(db, RoleCreate(name="Temp", code="temp"))
        await role_service.assign_permissions_to_role(
            db, permission_cache, role.id, [seeded.permissions["user.list"]]
        )
        await role_service.delete_role(db, permission_cache, role.id)

        result = await db.execute(select(role_permissions).where(role_permissions.c.role_id == role.id))
        assert result.first() is None

    @pytest.mark.asyncio
    async def test_assign_permissions_replaces_set(self, db, permission_cache, seeded):
        role = await role_service.assign_permissions_to_role(
            db, permission_cache, seeded.roles["auditor"],
            [seeded.permissions["role.list"], seeded.permissions["role.list"]],
        )
        assert [p.key for p in role.permissions] == ["role.list"]

    @pytest.mark.asyncio
    async def test_assign_unknown_permission(self, db, permission_cache, seeded):
        with pytest.raises(InvalidReferenceError):
            await role_service.assign_permissions_to_role(
                db, permission_cache, seeded.roles["auditor"], ["01HNOSUCHPERMISSION000000"]
            )

    @pytest.mark.asyncio
    async def test_assign_disabled_permission(self, db, permission_cache, seeded):
        disabled_id = seeded.permissions["role.delete"]
        await permission_service.batch_update_permission_status(db, permission_cache, [disabled_id], False)

        with pytest.raises(InvalidReferenceError):
            await role_service.assign_permissions_to_role(
                db, permission_cache, seeded.roles["auditor"], [disabled_id]
            )

        result = await db.execute(
            select(role_permissions).where(
                role_permissions.c.role_id == seeded.roles["auditor"],
                role_permissions.c.permission_id == disabled_id,
            )
        )
        assert result.first() is None

    @pytest.mark.asyncio
    async def test_update_role_name_conflict(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await role_service.update_role(
                db, permission_cache, seeded.roles["auditor"], RoleUpdate(name="Role Manager")
            )

    @pytest.mark.asyncio
    async def test_available_roles_exclude_disabled(self, db, permission_cache, seeded):
        await role_service.batch_update_role_status(db, permission_cache, [seeded.roles["auditor"]], False)
        available = await role_service.get_available_roles(db)
        assert [r.code for r in available] == ["role_manager"]

    @pytest.mark.asyncio
    async def test_role_change_clears_holder_cache(self, db, permission_cache, seeded):
        resolver = PermissionResolver(SQLAlchemyPermissionProvider(db), permission_cache)
        await resolver.resolve(seeded.admins["viewer"])
        assert permission_cache.get_user_permissions(seeded.admins["viewer"]) is not None

        await role_service.assign_permissions_to_role(
            db, permission_cache, seeded.roles["auditor"], [seeded.permissions["user.list"]]
        )

        assert permission_cache.get_user_permissions(seeded.admins["viewer"]) is None
        resolved = await resolver.resolve(seeded.admins["viewer"])
        assert "role.list" not in resolved.permission_keys


class TestAdminService:
    """Tests for admin role assignment."""

    @pytest.mark.asyncio
    async def test_assign_roles(self, db, permission_cache, seeded):
        admin = await admin_service.assign_roles_to_admin(
            db, permission_cache, seeded.admins["nobody"], [seeded.roles["auditor"], seeded.roles["role_manager"]]
        )
        assert sorted(r.code for r in admin.roles) == ["auditor", "role_manager"]

    @pytest.mark.asyncio
    async def test_assign_disabled_role_is_invalid(self, db, permission_cache, seeded):
        await role_service.batch_update_role_status(db, permission_cache, [seeded.roles["auditor"]], False)
        with pytest.raises(InvalidReferenceError):
            await admin_service.assign_roles_to_admin(
                db, permission_cache, seeded.admins["nobody"], [seeded.roles["auditor"]]
            )

    @pytest.mark.asyncio
    async def test_assign_to_unknown_admin(self, db, permission_cache, seeded):
        with pytest.raises(NotFoundError):
            await admin_service.assign_roles_to_admin(db, permission_cache, "01HNOSUCHADMIN00000000000", [])

    @pytest.mark.asyncio
    async def test_add_existing_role_conflicts(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await admin_service.add_admin_role(db, permission_cache, seeded.admins["viewer"], seeded.roles["auditor"])

    @pytest.mark.asyncio
    async def test_remove_missing_role(self, db, permission_cache, seeded):
        with pytest.raises(NotFoundError):
            await admin_service.remove_admin_role(
                db, permission_cache, seeded.admins["nobody"], seeded.roles["auditor"]
            )

    @pytest.mark.asyncio
    async def test_batch_assign(self, db, permission_cache, seeded):
        admins = await admin_service.batch_assign_roles(
            db, permission_cache,
            [seeded.admins["nobody"], seeded.admins["viewer"]],
            [seeded.roles["role_manager"]],
        )
        assert all([r.code for r in admin.roles] == ["role_manager"] for admin in admins)

    @pytest.mark.asyncio
    async def test_admins_by_role_and_permission(self, db, seeded):
        by_role = await admin_service.get_admins_by_role(db, "auditor")
        assert [a.account for a in by_role] == ["inactive", "viewer"]

        by_permission = await admin_service.get_admins_by_permission(db, "permission.list")
        assert [a.account for a in by_permission] == ["inactive", "manager", "viewer"]

    @pytest.mark.asyncio
    async def test_admin_roles_exclude_disabled(self, db, permission_cache, seeded):
        await role_service.batch_update_role_status(db, permission_cache, [seeded.roles["auditor"]], False)
        assert await admin_service.get_admin_roles(db, seeded.admins["viewer"]) == []

    @pytest.mark.asyncio
    async def test_promote_to_superadmin_is_seen_on_next_resolve(self, db, permission_cache, seeded):
        resolver = PermissionResolver(SQLAlchemyPermissionProvider(db), permission_cache)
        before = await resolver.resolve(seeded.admins["viewer"])
        assert before.is_superadmin is False

        admin = await admin_service.update_admin(
            db, permission_cache, seeded.admins["viewer"], AdminUpdate(type=AdminType.SUPER_ADMIN)
        )
        assert admin.type == AdminType.SUPER_ADMIN
        assert permission_cache.get_user_permissions(seeded.admins["viewer"]) is None

        after = await resolver.resolve(seeded.admins["viewer"])
        assert after.is_superadmin is True
        assert after.permission_keys == frozenset({"*"})

    @pytest.mark.asyncio
    async def test_update_admin_account_conflict(self, db, permission_cache, seeded):
        with pytest.raises(ConflictError):
            await admin_service.update_admin(
                db, permission_cache, seeded.admins["viewer"], AdminUpdate(account="manager")
            )

    @pytest.mark.asyncio
    async def test_update_unknown_admin(self, db, permission_cache, seeded):
        with pytest.raises(NotFoundError):
            await admin_service.update_admin(
                db, permission_cache, "01HNOSUCHADMIN00000000000", AdminUpdate(name="Ghost")
            )

    @pytest.mark.asyncio
    async def test_batch_status_skips_superadmins(self, db, permission_cache, seeded):
        resolver = PermissionResolver(SQLAlchemyPermissionProvider(db), permission_cache)
        await resolver.resolve(seeded.admins["viewer"])

        updated = await admin_service.batch_update_admin_status(
            db, permission_cache,
            [seeded.admins["root"], seeded.admins["viewer"], seeded.admins["nobody"]],
            AdminStatus.INACTIVE,
        )
        assert updated == 2
        assert permission_cache.get_user_permissions(seeded.admins["viewer"]) is None

        result = await db.execute(select(Admin.account, Admin.status).order_by(Admin.account))
        statuses = dict(result.all())
        assert statuses["root"] == AdminStatus.ACTIVE
        assert statuses["viewer"] == AdminStatus.INACTIVE
        assert statuses["nobody"] == AdminStatus.INACTIVE

    @pytest.mark.asyncio
    async def test_batch_status_only_superadmins(self, db, permission_cache, seeded):
        updated = await admin_service.batch_update_admin_status(
            db, permission_cache, [seeded.admins["root"]], AdminStatus.INACTIVE
        )
        assert updated == 0
