from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body = {'success': True, 'message': message}
    if data is not None:
        body['data'] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'success': False, 'message': message})


def paginated(data: list, meta: dict, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body = {'success': True, 'message': message, 'data': data, 'meta': meta}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
