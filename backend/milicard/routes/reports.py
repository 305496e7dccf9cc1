from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import func, select
from milicard.decorators.auth import require_permissions, require_base_permissions
from milicard.services.inventory import compute_stock
from milicard.services.policy import current_base_ids
from milicard.utils.filters import parse_bool_param
from milicard.utils.listing import respond_aggregate
from milicard.utils.validation import parse_date
from milicard import get_db
from milicard.models.purchase_order import PurchaseOrder
from milicard.models.point import Point, PointOrder
from milicard.models.sales import Customer, DistributionOrder
from milicard.models.stock_out import StockOut
from milicard.models.location import Location
from milicard.models.personnel import Personnel

rpt_bp = Blueprint('reports', __name__)

# domain label, model, grouping column, business date column, optional money column
_DOMAINS = (
    ('PurchaseOrder', PurchaseOrder, PurchaseOrder.status, PurchaseOrder.purchase_date, PurchaseOrder.total_amount_cents),
    ('PointOrder', PointOrder, PointOrder.status, PointOrder.order_date, PointOrder.total_amount_cents),
    ('DistributionOrder', DistributionOrder, DistributionOrder.status, DistributionOrder.order_date, DistributionOrder.total_amount_cents),
    ('StockOut', StockOut, StockOut.type, StockOut.out_date, None),
)


def _report_args():
    try:
        include_financial = parse_bool_param(request.args.get('include_financial') or 'false')
    except ValueError:
        abort(400, description='include_financial invalid')
    start_date = request.args.get('start_date')
    end_date = request.args.get('end_date')
    return (
        include_financial,
        parse_date(start_date, 'start_date') if start_date else None,
        parse_date(end_date, 'end_date') if end_date else None,
    )


def _gather_metrics(base_ids, include_financial: bool = False, start_date=None, end_date=None):
    session = get_db()
    metrics = []
    for domain, model, group_col, date_col, sum_col in _DOMAINS:
        columns = [group_col, func.count(model.id)]
        if include_financial and sum_col is not None:
            columns.append(func.coalesce(func.sum(sum_col), 0))
        stmt = select(*columns)
        if base_ids:
            stmt = stmt.where(model.base_id.in_(base_ids))
        if start_date:
            stmt = stmt.where(date_col >= start_date)
        if end_date:
            stmt = stmt.where(date_col <= end_date)
        for row in session.execute(stmt.group_by(group_col)):
            entry = {'domain': domain, 'status': row[0], 'count': int(row[1])}
            if include_financial and sum_col is not None:
                entry['sum_cents'] = int(row[2])
            metrics.append(entry)
    # Deterministic ordering
    metrics.sort(key=lambda m: (m['domain'], m.get('status') or ''))
    return metrics


@rpt_bp.route('/metrics', methods=['GET', 'HEAD'])
@require_permissions('RPT.READ')
def list_metrics():
    include_financial, start_date, end_date = _report_args()
    return respond_aggregate(_gather_metrics(current_base_ids(), include_financial, start_date, end_date))


@rpt_bp.route('/metrics/pivot', methods=['GET', 'HEAD'])
@require_permissions('RPT.READ')
def list_metrics_pivot():
    """Pivoted metrics, one row per domain: ``{"domain": ..., "statuses": {status: count}, "total": n}``."""
    include_financial, start_date, end_date = _report_args()
    pivot = {}
    for m in _gather_metrics(current_base_ids(), include_financial, start_date, end_date):
        row = pivot.setdefault(m['domain'], {'domain': m['domain'], 'statuses': {}, 'total': 0})
        row['statuses'][m['status']] = m['count']
        row['total'] += m['count']
        if 'sum_cents' in m:
            row['sum_cents'] = row.get('sum_cents', 0) + m['sum_cents']
    return respond_aggregate([pivot[k] for k in sorted(pivot)])


def _count(model, *where) -> int:
    return get_db().execute(select(func.count()).select_from(model).where(*where)).scalar_one()


def _total(column, *where) -> int:
    return int(get_db().execute(select(func.coalesce(func.sum(column), 0)).where(*where)).scalar_one())


@rpt_bp.get('/bases/<int:base_id>/overview')
@require_base_permissions('RPT.READ')
def base_overview(base_id: int):
    stock = compute_stock(get_db(), base_id=base_id)
    stocked_goods = {goods_id for (goods_id, _location_id), pieces in stock.items() if pieces > 0}
    return {
        'base_id': base_id,
        'locations': _count(Location, Location.base_id == base_id),
        'personnel': _count(Personnel, Personnel.base_id == base_id),
        'points': _count(Point, Point.base_id == base_id),
        'customers': _count(Customer, Customer.base_id == base_id),
        'open_purchase_orders': _count(
            PurchaseOrder, PurchaseOrder.base_id == base_id, PurchaseOrder.status == PurchaseOrder.STATUS_OPEN
        ),
        'purchase_total_cents': _total(
            PurchaseOrder.total_amount_cents,
            PurchaseOrder.base_id == base_id, PurchaseOrder.status != PurchaseOrder.STATUS_CANCELLED,
        ),
        'point_order_total_cents': _total(
            PointOrder.total_amount_cents,
            PointOrder.base_id == base_id, PointOrder.status != PointOrder.STATUS_CANCELLED,
        ),
        'stocked_goods': len(stocked_goods),
    }
