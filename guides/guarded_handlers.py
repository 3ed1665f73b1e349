"""Example protecting async handlers with the authorization gate."""

import asyncio
from datetime import timedelta

from rolegate import ActorRef, Gate, RbacConfig, UnauthorizedError, build_engine
from rolegate.guard import require_permission, require_role_or_permission
from rolegate.models import utcnow
from rolegate.store import InMemoryEntityStore

engine = build_engine(config=RbacConfig(), store=InMemoryEntityStore())
gate = Gate(engine)


@require_permission(gate, "reports.export")
async def export_report(actor, report_id: str) -> str:
    return f"report {report_id} exported by {actor.name}"


@require_role_or_permission(gate, "auditor|reports.read")
async def read_report(actor, report_id: str) -> str:
    return f"report {report_id} read by {actor.name}"


async def main():
    await engine.create_crud_permissions("reports", ["read", "export"])
    await engine.create_role("auditor")

    bob = ActorRef(id="bob", name="bob")
    await engine.give_permission_with_expiration(
        bob, "reports.export", expires_at=utcnow() + timedelta(hours=1)
    )

    print(await export_report(bob, "q3"))
    try:
        await read_report(bob, "q3")
    except UnauthorizedError as exc:
        print(f"⛔ {exc.message}")
        print(f"   {exc.to_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
