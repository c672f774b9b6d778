"""Sales reports computed from committed transactions."""
from decimal import Decimal
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any
from sqlalchemy import func, desc
from sqlalchemy.orm import Session
from pos.models import Product, Transaction, TransactionItem


def _in_range(query, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        query = query.filter(Transaction.created_at >= start)
    if end is not None:
        query = query.filter(Transaction.created_at < end)
    return query


def get_sales_summary(session: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Totals for transactions created in [start, end).

    Returns:
        dict with transaction_count, gross_sales and average_sale (Decimals)
    """
    query = session.query(
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.total_amount), 0)
    )
    count, gross = _in_range(query, start, end).one()
    gross = Decimal(str(gross)).quantize(Decimal('0.01'))
    average = (gross / count).quantize(Decimal('0.01')) if count else Decimal('0.00')
    return {
        'transaction_count': count,
        'gross_sales': gross,
        'average_sale': average,
    }


def get_top_selling_products(
    session: Session,
    limit: int = 10,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Products ranked by units sold.

    Grouped by the product name printed on the items so products deleted
    since the sale still count.
    """
    query = (
        session.query(
            TransactionItem.product_id.label('product_id'),
            TransactionItem.product_name.label('product_name'),
            func.sum(TransactionItem.quantity).label('quantity_sold'),
            func.sum(TransactionItem.subtotal).label('revenue')
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
    )
    query = (
        _in_range(query, start, end)
        .group_by(TransactionItem.product_id, TransactionItem.product_name)
        .order_by(desc('quantity_sold'), TransactionItem.product_name)
        .limit(limit)
    )
    return [
        {
            'product_id': row.product_id,
            'product_name': row.product_name,
            'quantity_sold': int(row.quantity_sold or 0),
            'revenue': Decimal(str(row.revenue or 0)).quantize(Decimal('0.01')),
        }
        for row in query.all()
    ]


def get_dashboard_stats(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Headline numbers for the back-office dashboard.

    Weeks start on Monday and months on the 1st, both at midnight.
    low_stock_count uses each product's own threshold and includes the
    products counted in out_of_stock_count.

    Returns:
        dict with today_sales, today_transactions, week_sales, month_sales,
        total_products, low_stock_count, out_of_stock_count
    """
    now = now or datetime.now()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)

    today_summary = get_sales_summary(session, start=today)
    active = session.query(func.count(Product.id)).filter(Product.is_active == True)  # noqa: E712

    return {
        'today_sales': today_summary['gross_sales'],
        'today_transactions': today_summary['transaction_count'],
        'week_sales': get_sales_summary(session, start=week_start)['gross_sales'],
        'month_sales': get_sales_summary(session, start=month_start)['gross_sales'],
        'total_products': active.scalar() or 0,
        'low_stock_count': active.filter(Product.stock <= Product.min_stock_threshold).scalar() or 0,
        'out_of_stock_count': active.filter(Product.stock <= 0).scalar() or 0,
    }
