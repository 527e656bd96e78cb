from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from bookstore.api.deps import get_current_identity, get_gateway, unwrap
from bookstore.db.gateway import Gateway
from bookstore.db.models import Book
from bookstore.db.queries import BookQuery, SortDirection
from bookstore.schemas import BookCreate, BookUpdate
from bookstore.utils.pagination import Page, page_meta, pagination_params
from bookstore.utils.response import paginated, success

router = APIRouter()

REQUIRED_FIELDS = ('title', 'writer', 'publisher', 'publication_year', 'price', 'stock_quantity', 'genre_id')
TEXT_FIELDS = ('title', 'writer', 'publisher', 'genre_id')


def book_view(book: Book) -> dict:
    return {
        'id': book.id,
        'title': book.title,
        'writer': book.writer,
        'publisher': book.publisher,
        'description': book.description,
        'publication_year': book.publication_year,
        'price': float(book.price),
        'stock_quantity': book.stock_quantity,
        'genre': book.genre.name if book.genre else None,
    }


def _clean(fields: dict) -> dict:
    """Strip text fields and reject blank required text or negative amounts."""
    for key in TEXT_FIELDS:
        if key in fields:
            fields[key] = fields[key].strip()
            if not fields[key]:
                raise HTTPException(status_code=400, detail='Missing required fields')
    if fields.get('price') is not None and fields['price'] < 0:
        raise HTTPException(status_code=400, detail='Price must not be negative')
    if fields.get('stock_quantity') is not None and fields['stock_quantity'] < 0:
        raise HTTPException(status_code=400, detail='Stock quantity must not be negative')
    return fields


def _list(gateway: Gateway, query: BookQuery, message: str):
    books, total = unwrap(gateway.list_books(query))
    return paginated([book_view(b) for b in books], page_meta(query.page, total), message)


@router.get('')
def list_books(
    page: Page = Depends(pagination_params),
    search: Optional[str] = None,
    order_by_title: Optional[SortDirection] = Query(default=None, alias='orderByTitle'),
    order_by_publish_date: Optional[SortDirection] = Query(default=None, alias='orderByPublishDate'),
    gateway: Gateway = Depends(get_gateway),
):
    query = BookQuery(page=page, search=search, order_by_title=order_by_title,
                      order_by_publish_date=order_by_publish_date)
    return _list(gateway, query, 'Get all book successfully')


@router.get('/genre/{genre_id}')
def list_books_by_genre(
    genre_id: str,
    page: Page = Depends(pagination_params),
    search: Optional[str] = None,
    order_by_title: Optional[SortDirection] = Query(default=None, alias='orderByTitle'),
    order_by_publish_date: Optional[SortDirection] = Query(default=None, alias='orderByPublishDate'),
    gateway: Gateway = Depends(get_gateway),
):
    query = BookQuery(page=page, search=search, genre_id=genre_id, order_by_title=order_by_title,
                      order_by_publish_date=order_by_publish_date)
    return _list(gateway, query, 'Get all book by genre successfully')


@router.get('/{book_id}')
def get_book(book_id: str, gateway: Gateway = Depends(get_gateway)):
    book = unwrap(gateway.get_book(book_id))
    return success(book_view(book), 'Get book detail successfully')


@router.post('', status_code=201)
def create_book(payload: BookCreate, gateway: Gateway = Depends(get_gateway), _=Depends(get_current_identity)):
    fields = payload.model_dump()
    if any(fields[key] is None for key in REQUIRED_FIELDS):
        raise HTTPException(status_code=400, detail='Missing required fields')
    fields = _clean(fields)
    fields['description'] = fields['description'] or ''

    written = unwrap(gateway.create_or_restore_book(fields))
    book = written.book
    if written.restored:
        return success(
            {'id': book.id, 'title': book.title, 'updated_at': book.updated_at},
            'Book restored and updated successfully',
        )
    return success(
        {'id': book.id, 'title': book.title, 'created_at': book.created_at},
        'Book added successfully',
        201,
    )


@router.patch('/{book_id}')
def update_book(book_id: str, payload: BookUpdate, gateway: Gateway = Depends(get_gateway),
                _=Depends(get_current_identity)):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        unwrap(gateway.get_book(book_id))
        raise HTTPException(status_code=400, detail='No fields to update')
    book = unwrap(gateway.update_book(book_id, _clean(changes)))
    return success({'id': book.id, 'title': book.title, 'updated_at': book.updated_at}, 'Book updated successfully')


@router.delete('/{book_id}')
def delete_book(book_id: str, gateway: Gateway = Depends(get_gateway), _=Depends(get_current_identity)):
    unwrap(gateway.delete_book(book_id))
    return success(message='Book removed successfully')
