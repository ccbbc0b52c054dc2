from dataclasses import dataclass

GUEST = "guest"
STAFF = "staff"
SYSTEM = "system"


@dataclass(frozen=True)
class Identity:
    """Who is acting: a guest, a staff member, or the scheduler itself."""
    kind: str
    id: int
    email: str
    verified: bool = False
    # staff only; None means every cafe
    cafe_ids: frozenset[int] | None = None

    @property
    def is_staff(self) -> bool:
        return self.kind == STAFF

    def can_manage(self, cafe_id: int) -> bool:
        if self.kind == SYSTEM:
            return True
        return self.kind == STAFF and (self.cafe_ids is None or cafe_id in self.cafe_ids)


SYSTEM_IDENTITY = Identity(kind=SYSTEM, id=0, email="system@localhost", verified=True)
