"""Persistence gateway; every public method runs in one transaction and returns an outcome."""

import functools
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from bookstore.db.models import Book, Genre, Order, OrderItem, User, now_utc
from bookstore.db.queries import BookQuery, GenreQuery, TransactionQuery
from bookstore.db.results import Conflict, Failure, NotFound, Ok, Outcome
from bookstore.db.session import Base, build_engine, build_session_factory

DUPLICATE = 'Duplicate field value'


@dataclass(frozen=True)
class BookWrite:
    book: Book
    restored: bool = False


@dataclass(frozen=True)
class OrderReceipt:
    order_id: str
    total_quantity: int
    total_price: Decimal


@dataclass(frozen=True)
class OrderSummary:
    id: str
    total_quantity: int
    total_price: Decimal


@dataclass(frozen=True)
class OrderStatistics:
    total_transactions: int
    average_transaction_amount: int
    most_book_sales_genre: str
    fewest_book_sales_genre: str


class _Abort(Exception):
    """Raised inside a transaction to roll it back and return ``outcome``."""

    def __init__(self, outcome):
        super().__init__(outcome)
        self.outcome = outcome


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def merge_lines(lines: Sequence[Tuple[str, int]]) -> List[Tuple[str, int]]:
    """Sum quantities of lines naming the same book, keeping first-seen order."""
    merged = {}
    for book_id, quantity in lines:
        merged[book_id] = merged.get(book_id, 0) + quantity
    return list(merged.items())


def pick_extremes(sales: Sequence[Tuple[str, int]]) -> Tuple[str, str]:
    """Return (most sold, fewest sold) genre names; ties go to the smaller name."""
    if not sales:
        return 'N/A', 'N/A'
    most = min(sales, key=lambda row: (-row[1], row[0]))[0]
    fewest = min(sales, key=lambda row: (row[1], row[0]))[0]
    return most, fewest


def guarded(conflict_message: str = DUPLICATE):
    """Turn database exceptions raised by a gateway method into outcomes."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except _Abort as exc:
                return exc.outcome
            except IntegrityError as exc:
                logger.warning(f"{fn.__name__}: integrity violation: {exc.orig}")
                return Conflict(conflict_message)
            except SQLAlchemyError:
                logger.exception(f"{fn.__name__}: database failure")
                return Failure()
        return wrapper
    return decorator


class Gateway:

    def __init__(self, session_factory, engine=None):
        self._session_factory = session_factory
        self.engine = engine

    @classmethod
    def from_settings(cls, settings) -> 'Gateway':
        engine = build_engine(settings.POSTGRES_DSN, echo=settings.SQL_ECHO)
        return cls(build_session_factory(engine), engine=engine)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self._session_factory() as db:
            with db.begin():
                yield db

    # -- users ---------------------------------------------------------------

    @guarded(DUPLICATE)
    def create_user(self, email: str, password_hash: str, username: Optional[str] = None) -> Outcome:
        with self.transaction() as db:
            if db.scalar(select(User.id).where(User.email == email)) is not None:
                return Conflict('Email already registered')
            if username and db.scalar(select(User.id).where(User.username == username)) is not None:
                return Conflict('Username already taken')
            user = User(email=email, username=username or None, password_hash=password_hash)
            db.add(user)
            db.flush()
            return Ok(user)

    @guarded()
    def get_user(self, user_id: str) -> Outcome:
        with self.transaction() as db:
            user = db.get(User, user_id)
            if user is None:
                return NotFound('User not found')
            return Ok(user)

    @guarded()
    def find_user_by_email(self, email: str) -> Outcome:
        with self.transaction() as db:
            user = db.scalars(select(User).where(User.email == email)).first()
            if user is None:
                return NotFound('User not found')
            return Ok(user)

    # -- genres --------------------------------------------------------------

    @staticmethod
    def _live_genre(db: Session, genre_id: str) -> Optional[Genre]:
        return db.scalars(
            select(Genre).where(Genre.id == genre_id, Genre.deleted_at.is_(None))
        ).first()

    @staticmethod
    def _genre_name_taken(db: Session, name: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(Genre.id).where(Genre.name == name, Genre.deleted_at.is_(None))
        if exclude_id is not None:
            stmt = stmt.where(Genre.id != exclude_id)
        return db.scalar(stmt) is not None

    @guarded()
    def list_genres(self, query: GenreQuery) -> Outcome:
        stmt = select(Genre).where(Genre.deleted_at.is_(None))
        if query.search:
            stmt = stmt.where(Genre.name.icontains(query.search, autoescape=True))

        if query.order_by_name == 'asc':
            ordering = [Genre.name.asc(), Genre.id]
        elif query.order_by_name == 'desc':
            ordering = [Genre.name.desc(), Genre.id]
        else:
            ordering = [Genre.created_at.desc(), Genre.id]

        with self.transaction() as db:
            total = db.scalar(select(func.count()).select_from(stmt.subquery()))
            rows = db.scalars(
                stmt.order_by(*ordering).offset(query.page.skip).limit(query.page.limit)
            ).all()
            return Ok((list(rows), total))

    @guarded()
    def get_genre(self, genre_id: str) -> Outcome:
        with self.transaction() as db:
            genre = self._live_genre(db, genre_id)
            if genre is None:
                return NotFound('Genre not found')
            return Ok(genre)

    @guarded('Genre name already exists')
    def create_genre(self, name: str) -> Outcome:
        with self.transaction() as db:
            if self._genre_name_taken(db, name):
                return Conflict('Genre name already exists')
            genre = Genre(name=name)
            db.add(genre)
            db.flush()
            return Ok(genre)

    @guarded('Genre name already exists')
    def update_genre(self, genre_id: str, name: str) -> Outcome:
        with self.transaction() as db:
            genre = self._live_genre(db, genre_id)
            if genre is None:
                return NotFound('Genre not found')
            if self._genre_name_taken(db, name, exclude_id=genre_id):
                return Conflict('Genre name already exists')
            genre.name = name
            genre.updated_at = now_utc()
            db.flush()
            return Ok(genre)

    @guarded()
    def delete_genre(self, genre_id: str) -> Outcome:
        with self.transaction() as db:
            genre = self._live_genre(db, genre_id)
            if genre is None:
                return NotFound('Genre not found')
            genre.deleted_at = genre.updated_at = now_utc()
            return Ok(genre)

    # -- books ---------------------------------------------------------------

    @staticmethod
    def _live_book(db: Session, book_id: str) -> Optional[Book]:
        return db.scalars(
            select(Book)
            .options(joinedload(Book.genre))
            .where(Book.id == book_id, Book.deleted_at.is_(None))
        ).first()

    @guarded()
    def list_books(self, query: BookQuery) -> Outcome:
        stmt = select(Book).where(Book.deleted_at.is_(None))
        if query.genre_id is not None:
            stmt = stmt.where(Book.genre_id == query.genre_id)
        if query.search:
            stmt = stmt.where(or_(
                Book.title.icontains(query.search, autoescape=True),
                Book.writer.icontains(query.search, autoescape=True),
                Book.publisher.icontains(query.search, autoescape=True),
            ))

        ordering = []
        if query.order_by_title:
            ordering.append(Book.title.asc() if query.order_by_title == 'asc' else Book.title.desc())
        if query.order_by_publish_date:
            ordering.append(
                Book.publication_year.asc() if query.order_by_publish_date == 'asc'
                else Book.publication_year.desc()
            )
        if not ordering:
            ordering.append(Book.created_at.desc())
        ordering.append(Book.id)

        with self.transaction() as db:
            if query.genre_id is not None and self._live_genre(db, query.genre_id) is None:
                return NotFound('Genre not found')
            total = db.scalar(select(func.count()).select_from(stmt.subquery()))
            rows = db.scalars(
                stmt.options(joinedload(Book.genre))
                .order_by(*ordering)
                .offset(query.page.skip)
                .limit(query.page.limit)
            ).all()
            return Ok((list(rows), total))

    @guarded()
    def get_book(self, book_id: str) -> Outcome:
        with self.transaction() as db:
            book = self._live_book(db, book_id)
            if book is None:
                return NotFound('Book not found')
            return Ok(book)

    @guarded(DUPLICATE)
    def create_or_restore_book(self, fields: dict) -> Outcome:
        """Insert a book, or bring back the soft-deleted book holding the same title."""
        with self.transaction() as db:
            if self._live_genre(db, fields['genre_id']) is None:
                return NotFound('Genre not found')

            existing = db.scalars(
                select(Book).where(Book.title == fields['title']).with_for_update()
            ).first()
            if existing is not None:
                if existing.deleted_at is None:
                    return Conflict('Book with this title already exists')
                for key, value in fields.items():
                    setattr(existing, key, value)
                existing.deleted_at = None
                existing.updated_at = now_utc()
                db.flush()
                return Ok(BookWrite(existing, restored=True))

            book = Book(**fields)
            db.add(book)
            db.flush()
            return Ok(BookWrite(book, restored=False))

    @guarded('Book with this title already exists')
    def update_book(self, book_id: str, changes: dict) -> Outcome:
        with self.transaction() as db:
            book = self._live_book(db, book_id)
            if book is None:
                return NotFound('Book not found')
            if 'genre_id' in changes and self._live_genre(db, changes['genre_id']) is None:
                return NotFound('Genre not found')
            if 'title' in changes and changes['title'] != book.title:
                clash = db.scalars(
                    select(Book).where(Book.title == changes['title'], Book.id != book_id)
                ).first()
                if clash is not None and clash.deleted_at is not None:
                    return Conflict('Book title is held by a deleted book')
                if clash is not None:
                    return Conflict('Book with this title already exists')
            for key, value in changes.items():
                setattr(book, key, value)
            book.updated_at = now_utc()
            db.flush()
            return Ok(book)

    @guarded()
    def delete_book(self, book_id: str) -> Outcome:
        with self.transaction() as db:
            book = self._live_book(db, book_id)
            if book is None:
                return NotFound('Book not found')
            book.deleted_at = book.updated_at = now_utc()
            return Ok(book)

    # -- orders --------------------------------------------------------------

    def _decrement_stock(self, db: Session, book: Book, quantity: int) -> None:
        result = db.execute(
            update(Book)
            .where(Book.id == book.id, Book.stock_quantity >= quantity)
            .values(stock_quantity=Book.stock_quantity - quantity, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _Abort(Conflict(f'Insufficient stock for book: {book.title}'))

    @guarded()
    def place_order(self, user_id: str, lines: Sequence[Tuple[str, int]]) -> Outcome:
        # rows locked in id order; each decrement is conditional on remaining stock
        lines = merge_lines(lines)
        book_ids = [book_id for book_id, _ in lines]

        with self.transaction() as db:
            if db.get(User, user_id) is None:
                return NotFound('User not found')

            books = {
                book.id: book
                for book in db.scalars(
                    select(Book)
                    .where(Book.id.in_(book_ids), Book.deleted_at.is_(None))
                    .order_by(Book.id)
                    .with_for_update()
                )
            }
            for book_id in book_ids:
                if book_id not in books:
                    return NotFound(f'Book {book_id} not found')
            for book_id, quantity in lines:
                book = books[book_id]
                if book.stock_quantity < quantity:
                    return Conflict(f'Insufficient stock for book: {book.title}')

            order = Order(user_id=user_id)
            db.add(order)
            db.flush()

            total_quantity, total_price = 0, Decimal('0')
            for position, (book_id, quantity) in enumerate(lines):
                book = books[book_id]
                price = _to_decimal(book.price)
                db.add(OrderItem(
                    order_id=order.id,
                    book_id=book_id,
                    position=position,
                    quantity=quantity,
                    unit_price=price,
                ))
                self._decrement_stock(db, book, quantity)
                total_quantity += quantity
                total_price += price * quantity
            db.flush()

            logger.info(f"Order {order.id} placed by user {user_id}: {total_quantity} item(s), total {total_price}")
            return Ok(OrderReceipt(order.id, total_quantity, total_price))

    @guarded()
    def list_orders(self, query: TransactionQuery) -> Outcome:
        total_quantity = func.coalesce(func.sum(OrderItem.quantity), 0).label('total_quantity')
        total_price = func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_price), 0).label('total_price')

        stmt = (
            select(Order.id, total_quantity, total_price)
            .outerjoin(OrderItem, OrderItem.order_id == Order.id)
            .group_by(Order.id, Order.created_at)
        )
        count_stmt = select(func.count(Order.id))
        if query.search:
            stmt = stmt.where(Order.id == query.search)
            count_stmt = count_stmt.where(Order.id == query.search)

        ordering = []
        if query.order_by_amount:
            ordering.append(total_price.asc() if query.order_by_amount == 'asc' else total_price.desc())
        if query.order_by_id:
            ordering.append(Order.id.asc() if query.order_by_id == 'asc' else Order.id.desc())
        if not ordering:
            ordering.append(Order.created_at.desc())
        ordering.append(Order.id)

        with self.transaction() as db:
            total = db.scalar(count_stmt)
            rows = db.execute(
                stmt.order_by(*ordering).offset(query.page.skip).limit(query.page.limit)
            ).all()
            summaries = [
                OrderSummary(row.id, int(row.total_quantity), _to_decimal(row.total_price))
                for row in rows
            ]
            return Ok((summaries, total))

    @guarded()
    def get_order(self, order_id: str) -> Outcome:
        with self.transaction() as db:
            order = db.scalars(
                select(Order)
                .options(selectinload(Order.items).joinedload(OrderItem.book))
                .where(Order.id == order_id.strip().lower())
            ).first()
            if order is None:
                return NotFound('Transaction not found')
            return Ok(order)

    @guarded()
    def order_statistics(self) -> Outcome:
        with self.transaction() as db:
            count = db.scalar(select(func.count(Order.id))) or 0
            amount = _to_decimal(db.scalar(
                select(func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_price), 0))
            ))
            sales = db.execute(
                select(Genre.name, func.sum(OrderItem.quantity))
                .select_from(OrderItem)
                .join(Book, OrderItem.book_id == Book.id)
                .join(Genre, Book.genre_id == Genre.id)
                .group_by(Genre.name)
            ).all()

        average = int((amount / count).quantize(Decimal('1'), rounding=ROUND_HALF_UP)) if count else 0
        most, fewest = pick_extremes([(name, int(units or 0)) for name, units in sales])
        return Ok(OrderStatistics(
            total_transactions=count,
            average_transaction_amount=average,
            most_book_sales_genre=most,
            fewest_book_sales_genre=fewest,
        ))
