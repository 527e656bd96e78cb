from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from bookstore.api.deps import get_current_identity, get_gateway, unwrap
from bookstore.db.gateway import Gateway
from bookstore.db.queries import GenreQuery, SortDirection
from bookstore.schemas import GenrePayload
from bookstore.utils.pagination import Page, page_meta, pagination_params
from bookstore.utils.response import paginated, success

router = APIRouter()


def _required_name(payload: GenrePayload) -> str:
    name = (payload.name or '').strip()
    if not name:
        raise HTTPException(status_code=400, detail='Name is required')
    return name


@router.get('')
def list_genres(
    page: Page = Depends(pagination_params),
    search: Optional[str] = None,
    order_by_name: Optional[SortDirection] = Query(default=None, alias='orderByName'),
    gateway: Gateway = Depends(get_gateway),
):
    query = GenreQuery(page=page, search=search, order_by_name=order_by_name)
    genres, total = unwrap(gateway.list_genres(query))
    data = [{'id': g.id, 'name': g.name} for g in genres]
    return paginated(data, page_meta(page, total), 'Get all genre successfully')


@router.get('/{genre_id}')
def get_genre(genre_id: str, gateway: Gateway = Depends(get_gateway)):
    genre = unwrap(gateway.get_genre(genre_id))
    return success({'id': genre.id, 'name': genre.name}, 'Get genre detail successfully')


@router.post('', status_code=201)
def create_genre(payload: GenrePayload, gateway: Gateway = Depends(get_gateway), _=Depends(get_current_identity)):
    genre = unwrap(gateway.create_genre(_required_name(payload)))
    return success(
        {'id': genre.id, 'name': genre.name, 'created_at': genre.created_at},
        'Genre created successfully',
        201,
    )


@router.patch('/{genre_id}')
def update_genre(genre_id: str, payload: GenrePayload, gateway: Gateway = Depends(get_gateway),
                 _=Depends(get_current_identity)):
    genre = unwrap(gateway.update_genre(genre_id, _required_name(payload)))
    return success(
        {'id': genre.id, 'name': genre.name, 'updated_at': genre.updated_at},
        'Genre updated successfully',
    )


@router.delete('/{genre_id}')
def delete_genre(genre_id: str, gateway: Gateway = Depends(get_gateway), _=Depends(get_current_identity)):
    unwrap(gateway.delete_genre(genre_id))
    return success(message='Genre removed successfully')
