"""
Top-level test configuration for Taskgate.
"""

import itertools
import os
from collections import Counter
from collections.abc import Sequence
from dataclasses import replace

import pytest

# Ensure test-friendly defaults
os.environ.setdefault("TASKGATE_JSON_LOGS", "false")
os.environ.setdefault("TASKGATE_LOG_LEVEL", "DEBUG")

from taskgate.permissions.protocol import (  # noqa: E402
    Actor,
    GlobalGrant,
    GrantHolder,
    HolderKind,
    LocalGrant,
    ResourceNode,
)


class InMemoryPermissionStore:
    """Dict-backed implementation of every permission Protocol.

    ``calls`` counts store method invocations so tests can assert that a
    check fetches its data once.
    """

    def __init__(self) -> None:
        self.resources: dict[int, ResourceNode] = {}
        self.actors: dict[str, Actor] = {}
        self.positions: set[str] = set()
        self.role_projects: dict[int, int | None] = {}
        self.local_grants: list[LocalGrant] = []
        self.global_grants: list[GlobalGrant] = []
        self.calls: Counter[str] = Counter()
        self._ids = itertools.count(1)

    # --- Builders ---

    def add_resource(
        self,
        resource_id: int,
        kind: str,
        entity_id: int,
        parent_id: int | None = None,
        folder_id: int | None = None,
    ) -> ResourceNode:
        node = ResourceNode(resource_id, kind, entity_id, parent_id, folder_id)
        self.resources[resource_id] = node
        return node

    def add_actor(
        self, actor_id: str, position_id: str | None = None, role_ids: Sequence[int] = ()
    ) -> Actor:
        if position_id is not None:
            self.positions.add(position_id)
        for role_id in role_ids:
            self.role_projects.setdefault(role_id, None)
        actor = Actor(actor_id, position_id, tuple(role_ids))
        self.actors[actor_id] = actor
        return actor

    def add_role(self, role_id: int, project_id: int | None = None) -> None:
        self.role_projects[role_id] = project_id

    def grant_local(
        self, holder: GrantHolder, resource_id: int, **flags: bool | None
    ) -> LocalGrant:
        grant = LocalGrant(resource_id=resource_id, holder=holder, id=next(self._ids), **flags)
        self.local_grants.append(grant)
        return grant

    def grant_global(self, holder: GrantHolder, subject: str, **flags: bool) -> GlobalGrant:
        grant = GlobalGrant(subject=subject, holder=holder, id=next(self._ids), **flags)
        self.global_grants.append(grant)
        return grant

    # --- ResourceHierarchyStore ---

    async def find_by_id(self, resource_id: int) -> ResourceNode | None:
        self.calls["find_by_id"] += 1
        return self.resources.get(resource_id)

    async def find_children(self, resource_id: int) -> list[ResourceNode]:
        self.calls["find_children"] += 1
        return sorted(
            (r for r in self.resources.values() if r.parent_id == resource_id),
            key=lambda r: r.id,
        )

    async def find_parent_chain(self, resource_id: int, max_depth: int) -> list[ResourceNode]:
        self.calls["find_parent_chain"] += 1
        chain: list[ResourceNode] = []
        seen: set[int] = set()
        node = self.resources.get(resource_id)
        while node is not None and node.id not in seen and len(chain) < max_depth:
            chain.append(node)
            seen.add(node.id)
            node = self.resources.get(node.parent_id) if node.parent_id is not None else None
        return chain

    async def find_by_entity(self, kind: str, entity_id: int) -> ResourceNode | None:
        self.calls["find_by_entity"] += 1
        for r in self.resources.values():
            if r.kind == kind and r.entity_id == entity_id:
                return r
        return None

    async def find_by_corresponding_folder(self, folder_id: int) -> ResourceNode | None:
        self.calls["find_by_corresponding_folder"] += 1
        for r in self.resources.values():
            if r.corresponding_folder_id == folder_id:
                return r
        return None

    async def list_resources(self) -> list[ResourceNode]:
        return sorted(self.resources.values(), key=lambda r: r.id)

    # --- GrantStore ---

    def _local(
        self, kind: HolderKind, ids: set, resource_ids: Sequence[int] | None
    ) -> list[LocalGrant]:
        return [
            g
            for g in self.local_grants
            if g.holder.kind == kind
            and g.holder.id in ids
            and (resource_ids is None or g.resource_id in resource_ids)
        ]

    async def find_grants_for_actor(
        self, actor_id: str, resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]:
        self.calls["find_grants_for_actor"] += 1
        return self._local(HolderKind.USER, {actor_id}, resource_ids)

    async def find_grants_for_position(
        self, position_id: str, resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]:
        self.calls["find_grants_for_position"] += 1
        return self._local(HolderKind.POSITION, {position_id}, resource_ids)

    async def find_grants_for_roles(
        self, role_ids: Sequence[int], resource_ids: Sequence[int] | None = None
    ) -> list[LocalGrant]:
        self.calls["find_grants_for_roles"] += 1
        return self._local(HolderKind.PROJECT_ROLE, set(role_ids), resource_ids)

    async def find_global_grants_for_actor(self, actor_id: str) -> list[GlobalGrant]:
        self.calls["find_global_grants_for_actor"] += 1
        return [
            g
            for g in self.global_grants
            if g.holder == GrantHolder(HolderKind.USER, actor_id)
        ]

    async def find_global_grants_for_position(self, position_id: str) -> list[GlobalGrant]:
        self.calls["find_global_grants_for_position"] += 1
        return [
            g
            for g in self.global_grants
            if g.holder == GrantHolder(HolderKind.POSITION, position_id)
        ]

    # --- ActorStore ---

    async def find_actor_by_id(self, actor_id: str) -> Actor | None:
        self.calls["find_actor_by_id"] += 1
        return self.actors.get(actor_id)

    async def find_role_project_id(self, role_id: int) -> int | None:
        return self.role_projects.get(role_id)

    # --- GrantWriter ---

    async def holder_exists(self, holder: GrantHolder) -> bool:
        if holder.kind == HolderKind.USER:
            return holder.id in self.actors
        if holder.kind == HolderKind.POSITION:
            return holder.id in self.positions
        return holder.id in self.role_projects

    async def get_local_grant(self, holder: GrantHolder, resource_id: int) -> LocalGrant | None:
        for g in self.local_grants:
            if g.holder == holder and g.resource_id == resource_id:
                return g
        return None

    async def save_local_grant(self, grant: LocalGrant) -> LocalGrant:
        await self.delete_local_grant(grant.holder, grant.resource_id)
        if grant.id is None:
            grant = replace(grant, id=next(self._ids))
        self.local_grants.append(grant)
        return grant

    async def delete_local_grant(self, holder: GrantHolder, resource_id: int) -> None:
        self.local_grants = [
            g
            for g in self.local_grants
            if not (g.holder == holder and g.resource_id == resource_id)
        ]

    async def get_global_grant(self, holder: GrantHolder, subject: str) -> GlobalGrant | None:
        for g in self.global_grants:
            if g.holder == holder and g.subject == subject:
                return g
        return None

    async def save_global_grant(self, grant: GlobalGrant) -> GlobalGrant:
        await self.delete_global_grant(grant.holder, grant.subject)
        if grant.id is None:
            grant = replace(grant, id=next(self._ids))
        self.global_grants.append(grant)
        return grant

    async def delete_global_grant(self, holder: GrantHolder, subject: str) -> None:
        self.global_grants = [
            g for g in self.global_grants if not (g.holder == holder and g.subject == subject)
        ]


@pytest.fixture
def store() -> InMemoryPermissionStore:
    return InMemoryPermissionStore()


@pytest.fixture
def project_tree(store: InMemoryPermissionStore) -> InMemoryPermissionStore:
    """Project 1 > Phase 3 > Task 7 > Subtask 9 > File 11, plus a template.

    Resource ids: project 1, phase 2, task 3, subtask 4, file 5, template 6.
    """
    store.add_resource(1, "project", 1, folder_id=100)
    store.add_resource(2, "project_phase", 3, parent_id=1)
    store.add_resource(3, "task", 7, parent_id=2, folder_id=107)
    store.add_resource(4, "subtask", 9, parent_id=3)
    store.add_resource(5, "file", 11, parent_id=4)
    store.add_resource(6, "template", 2)
    store.add_actor("alice", position_id="pos-dev", role_ids=[21])
    store.add_role(21, project_id=1)
    return store
