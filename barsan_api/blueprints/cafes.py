from flask import Blueprint, request, jsonify, g
from sqlalchemy import select
from ..auth import login_required
from ..errors import Forbidden, InvalidRequest, NotFound
from ..extensions import db
from ..http import jerror
from ..identity import STAFF
from ..models import Cafe, CafeTable
from ..schemas import CafeCreate, TableCreate

bp = Blueprint("cafes", __name__)


def _table_json(t: CafeTable) -> dict:
    return {"id": t.id, "number": t.number, "capacity": t.capacity, "isActive": t.is_active}


def _cafe_json(c: Cafe, with_tables: bool = False) -> dict:
    data = {"id": c.id, "name": c.name, "slug": c.slug, "openTime": c.open_time, "closeTime": c.close_time}
    if with_tables:
        data["tables"] = [_table_json(t) for t in c.tables]
    return data


@bp.get("")
def list_cafes():
    cafes = db.session.execute(select(Cafe).order_by(Cafe.name)).scalars()
    return jsonify(cafes=[_cafe_json(c) for c in cafes])


@bp.get("/<int:cafe_id>")
def get_cafe(cafe_id: int):
    cafe = db.session.get(Cafe, cafe_id)
    if cafe is None:
        raise NotFound("Cafe not found.")
    return jsonify(_cafe_json(cafe, with_tables=True))


@bp.post("")
@login_required(STAFF)
def create_cafe():
    if g.identity.cafe_ids is not None:
        raise Forbidden("Only group-wide staff can open a cafe.")
    data = CafeCreate.model_validate(request.get_json(silent=True) or {})
    if db.session.execute(select(Cafe.id).where(Cafe.slug == data.slug)).first():
        return jerror(409, "SLUG_EXISTS", "A cafe with this slug already exists.")

    cafe = Cafe(name=data.name, slug=data.slug, open_time=data.open_time, close_time=data.close_time)
    db.session.add(cafe)
    db.session.commit()
    return jsonify(_cafe_json(cafe, with_tables=True)), 201


@bp.post("/<int:cafe_id>/tables")
@login_required(STAFF)
def add_table(cafe_id: int):
    cafe = db.session.get(Cafe, cafe_id)
    if cafe is None:
        raise NotFound("Cafe not found.")
    if not g.identity.can_manage(cafe_id):
        raise Forbidden("Not allowed to manage this cafe.")
    data = TableCreate.model_validate(request.get_json(silent=True) or {})
    if any(t.number == data.number for t in cafe.tables):
        raise InvalidRequest(f"Table {data.number} already exists at {cafe.name}.")

    table = CafeTable(cafe=cafe, number=data.number, capacity=data.capacity, is_active=data.is_active)
    db.session.add(table)
    db.session.commit()
    return jsonify(_table_json(table)), 201
