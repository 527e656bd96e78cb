from pydantic import BaseModel
from typing import Optional, List
from decimal import Decimal

class RegisterPayload(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

class LoginPayload(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class GenrePayload(BaseModel):
    name: Optional[str] = None

class BookCreate(BaseModel):
    title: Optional[str] = None
    writer: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = None
    price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    genre_id: Optional[str] = None

class BookUpdate(BaseModel):
    title: Optional[str] = None
    writer: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = None
    price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    genre_id: Optional[str] = None

class TransactionItem(BaseModel):
    book_id: str
    quantity: int

class TransactionCreate(BaseModel):
    user_id: Optional[str] = None
    items: Optional[List[TransactionItem]] = None
