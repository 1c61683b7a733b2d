from fastapi import APIRouter, Depends, Query, Response

from ..database.repository import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    PaginatedResponse,
    PaginationParams,
)
from ..models.book import Book, BookCreate, BookSearchParams, BookUpdate
from ..models.user import User
from ..services.catalog import CatalogService
from .dependencies import catalog_service, current_user, staff_user

router = APIRouter(prefix="/books", tags=["books"])


@router.get("", response_model=PaginatedResponse[Book])
def list_books(
    query: str | None = None,
    isbn: str | None = None,
    author: str | None = None,
    genre: str | None = None,
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    _: User = Depends(current_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.search_books(
        BookSearchParams(query=query, isbn=isbn, author=author, genre=genre),
        PaginationParams(limit=limit, offset=offset),
    )


@router.get("/isbn/{isbn}", response_model=Book)
def get_book_by_isbn(
    isbn: str,
    _: User = Depends(current_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.get_book_by_isbn(isbn)


@router.get("/{book_id}", response_model=Book)
def get_book(
    book_id: str,
    _: User = Depends(current_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.get_book(book_id)


@router.post("", response_model=Book, status_code=201)
def create_book(
    payload: BookCreate,
    _: User = Depends(staff_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.create_book(payload)


@router.put("/{book_id}", response_model=Book)
def update_book(
    book_id: str,
    payload: BookUpdate,
    _: User = Depends(staff_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.update_book(book_id, payload)


@router.delete("/{book_id}", status_code=204)
def delete_book(
    book_id: str,
    _: User = Depends(staff_user),
    catalog: CatalogService = Depends(catalog_service),
):
    catalog.delete_book(book_id)
    return Response(status_code=204)
