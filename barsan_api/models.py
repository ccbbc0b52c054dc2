
from sqlalchemy import CheckConstraint, UniqueConstraint, func
from .extensions import db
from .scheduling.availability import Slot
from .scheduling.states import Status


class Cafe(db.Model):
    __tablename__ = "cafes"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    open_time = db.Column(db.String(5), nullable=False)
    close_time = db.Column(db.String(5), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    tables = db.relationship("CafeTable", back_populates="cafe", cascade="all, delete-orphan",
                             order_by="CafeTable.number")


class CafeTable(db.Model):
    __tablename__ = "tables"
    id = db.Column(db.Integer, primary_key=True)
    cafe_id = db.Column(db.Integer, db.ForeignKey("cafes.id", ondelete="CASCADE"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    cafe = db.relationship("Cafe", back_populates="tables")

    __table_args__ = (
        UniqueConstraint("cafe_id", "number", name="uq_table_cafe_number"),
        CheckConstraint("capacity > 0", name="ck_table_capacity_positive"),
    )


class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255))
    full_name = db.Column(db.String(120))
    phone = db.Column(db.String(32))
    image = db.Column(db.String(512))
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    accounts = db.relationship("Account", back_populates="user", cascade="all, delete-orphan")
    reservations = db.relationship("Reservation", back_populates="user", passive_deletes=True)


class Account(db.Model):
    """External identity provider account linked to a guest."""
    __tablename__ = "accounts"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = db.Column(db.String(32), nullable=False)
    provider_account_id = db.Column(db.String(255), nullable=False)

    user = db.relationship("User", back_populates="accounts")

    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_account_provider"),
    )


class Admin(db.Model):
    __tablename__ = "admins"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    roles = db.relationship("AdminRole", back_populates="admin", cascade="all, delete-orphan")

    def cafe_scope(self) -> frozenset[int] | None:
        """Cafe ids this admin may manage; None when a role covers every cafe."""
        if any(r.cafe_id is None for r in self.roles):
            return None
        return frozenset(r.cafe_id for r in self.roles)


class AdminRole(db.Model):
    __tablename__ = "admin_roles"
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False, default="manager")
    # NULL: all cafes
    cafe_id = db.Column(db.Integer, db.ForeignKey("cafes.id", ondelete="CASCADE"))

    admin = db.relationship("Admin", back_populates="roles")
    cafe = db.relationship("Cafe")


class Reservation(db.Model):
    __tablename__ = "reservations"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    duration = db.Column(db.Integer, nullable=False)
    party_size = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=Status.CONFIRMED.value, index=True)

    guest_name = db.Column(db.String(120), nullable=False)
    guest_email = db.Column(db.String(255), nullable=False)
    guest_phone = db.Column(db.String(32))
    special_requests = db.Column(db.Text)
    cancellation_reason = db.Column(db.Text)
    cancelled_by = db.Column(db.String(16))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    user = db.relationship("User", back_populates="reservations")
    table = db.relationship("CafeTable")

    __table_args__ = (
        db.Index("ix_reservations_table_date", "table_id", "date"),
        CheckConstraint("duration > 0", name="ck_reservation_duration_positive"),
        CheckConstraint("party_size > 0", name="ck_reservation_party_positive"),
    )

    @property
    def slot(self) -> Slot:
        return Slot.at(self.start_time, self.duration)


class UserSession(db.Model):
    __tablename__ = "user_sessions"
    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(128), nullable=False, unique=True, index=True)
    kind = db.Column(db.String(8), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), index=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id", ondelete="CASCADE"), index=True)
    ip_address = db.Column(db.String(64))
    issued_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    last_activity = db.Column(db.DateTime, nullable=False)
    revoked = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User")
    admin = db.relationship("Admin")

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (admin_id IS NULL)",
            name="ck_session_single_owner",
        ),
    )
