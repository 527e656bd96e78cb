from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from bookstore.api.deps import get_current_identity, get_gateway, unwrap
from bookstore.db.gateway import Gateway
from bookstore.db.queries import SortDirection, TransactionQuery
from bookstore.schemas import TransactionCreate
from bookstore.utils.pagination import Page, page_meta, pagination_params
from bookstore.utils.response import paginated, success

# every transaction route requires a bearer token
router = APIRouter(dependencies=[Depends(get_current_identity)])


def _money(value) -> float:
    return float(round(value, 2))


@router.post('', status_code=201)
def create_transaction(payload: TransactionCreate, gateway: Gateway = Depends(get_gateway)):
    user_id = (payload.user_id or '').strip()
    if not user_id or not payload.items or any(it.quantity < 1 or not it.book_id.strip() for it in payload.items):
        raise HTTPException(status_code=400, detail='Invalid request data')

    lines = [(it.book_id.strip(), it.quantity) for it in payload.items]
    receipt = unwrap(gateway.place_order(user_id, lines))
    return success(
        {
            'transaction_id': receipt.order_id,
            'total_quantity': receipt.total_quantity,
            'total_price': _money(receipt.total_price),
        },
        'Transaction created successfully',
        201,
    )


@router.get('')
def list_transactions(
    page: Page = Depends(pagination_params),
    search: Optional[str] = None,
    order_by_id: Optional[SortDirection] = Query(default=None, alias='orderById'),
    order_by_amount: Optional[SortDirection] = Query(default=None, alias='orderByAmount'),
    gateway: Gateway = Depends(get_gateway),
):
    query = TransactionQuery(page=page, search=search, order_by_id=order_by_id, order_by_amount=order_by_amount)
    orders, total = unwrap(gateway.list_orders(query))
    data = [
        {'id': o.id, 'total_quantity': o.total_quantity, 'total_price': _money(o.total_price)}
        for o in orders
    ]
    return paginated(data, page_meta(page, total), 'Get all transaction successfully')


@router.get('/statistics')
def transaction_statistics(gateway: Gateway = Depends(get_gateway)):
    stats = unwrap(gateway.order_statistics())
    return success(
        {
            'total_transactions': stats.total_transactions,
            'average_transaction_amount': stats.average_transaction_amount,
            'most_book_sales_genre': stats.most_book_sales_genre,
            'fewest_book_sales_genre': stats.fewest_book_sales_genre,
        },
        'Get transactions statistics successfully',
    )


@router.get('/{transaction_id}')
def get_transaction(transaction_id: str, gateway: Gateway = Depends(get_gateway)):
    order = unwrap(gateway.get_order(transaction_id))
    items, total_quantity, total_price = [], 0, 0
    for it in order.items:
        subtotal = it.unit_price * it.quantity
        total_quantity += it.quantity
        total_price += subtotal
        items.append({
            'book_id': it.book_id,
            'book_title': it.book.title,
            'quantity': it.quantity,
            'unit_price': _money(it.unit_price),
            'subtotal_price': _money(subtotal),
        })
    return success(
        {
            'id': order.id,
            'user_id': order.user_id,
            'created_at': order.created_at,
            'items': items,
            'total_quantity': total_quantity,
            'total_price': _money(total_price),
        },
        'Get transaction detail successfully',
    )
